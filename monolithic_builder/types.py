"""Shared type definitions for monolithic_builder.

This module contains enums and result-name constants shared across
subpackages to avoid circular imports.
"""

from enum import Enum


class BuildState(str, Enum):
    """State of a build-container run."""

    INIT = "init"
    CHECK_EXISTENCE = "check_existence"
    CLONE_SOURCE = "clone_source"
    SKIP_PATH = "skip_path"
    PREFETCH_DEPS = "prefetch_deps"
    BUILD_IMAGE = "build_image"
    PUSH_IMAGE = "push_image"
    RESOLVE_DIGEST = "resolve_digest"
    WRITE_RESULTS = "write_results"
    DONE = "done"
    FAILED = "failed"


class IndexState(str, Enum):
    """State of a build-image-index run."""

    INIT = "init"
    DECIDE = "decide"
    ASSEMBLE = "assemble"
    PASS_THROUGH = "pass_through"
    WRITE_RESULTS = "write_results"
    DONE = "done"
    FAILED = "failed"


class RevisionKind(str, Enum):
    """Interpretation of a revision string that matched."""

    COMMIT = "commit"
    BRANCH = "branch"
    TAG = "tag"
    DEFAULT = "default"


# Result names consumed by downstream pipeline tasks
RESULT_BUILD = "build"
RESULT_COMMIT = "commit"
RESULT_URL = "url"
RESULT_IMAGE_URL = "IMAGE_URL"
RESULT_IMAGE_DIGEST = "IMAGE_DIGEST"


__all__ = [
    "BuildState",
    "IndexState",
    "RESULT_BUILD",
    "RESULT_COMMIT",
    "RESULT_IMAGE_DIGEST",
    "RESULT_IMAGE_URL",
    "RESULT_URL",
    "RevisionKind",
]
