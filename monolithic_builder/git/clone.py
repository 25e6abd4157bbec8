"""Source checkout for build-container runs.

This module handles:
- Composing the ``git clone`` command
- Checking out the requested revision (see revision.py)
- Materializing submodules (best-effort)
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from monolithic_builder.git.revision import GIT, RevisionResolver
from monolithic_builder.types import RevisionKind

if TYPE_CHECKING:
    from monolithic_builder.process import ProcessInvoker

logger = logging.getLogger(__name__)

_REF_PREFIXES = ("refs/heads/", "refs/tags/")


@dataclass(frozen=True)
class CloneConfig:
    """Inputs for cloning the source repository.

    Attributes:
        url: Repository URL.
        destination: Directory to clone into.
        revision: Commit id, branch or tag to check out (empty = default).
        refspec: Branch or tag to clone instead of the remote default.
        depth: Clone depth (0 = full history).
        submodules: Initialize and update submodules after checkout.
    """

    url: str
    destination: Path
    revision: str = ""
    refspec: str = ""
    depth: int = 1
    submodules: bool = True


@dataclass(frozen=True)
class CloneResult:
    """Outcome of a clone: the checked out commit and source URL."""

    commit_sha: str
    url: str
    revision_kind: RevisionKind = RevisionKind.DEFAULT


def _clone_branch(refspec: str) -> str:
    for prefix in _REF_PREFIXES:
        if refspec.startswith(prefix):
            return refspec[len(prefix) :]
    return refspec


def git_clone_args(config: CloneConfig) -> list[str]:
    """Compose the ``git clone`` arguments.

    Args:
        config: Clone inputs.

    Returns:
        Arguments for git, without the executable name.
    """
    args = ["clone"]
    if config.depth > 0:
        args.extend(["--depth", str(config.depth)])
    if config.refspec:
        args.extend(["--branch", _clone_branch(config.refspec)])
    args.extend(["--", config.url, str(config.destination)])
    return args


def git_submodule_args(worktree: Path, depth: int = 1) -> list[str]:
    args = ["-C", str(worktree), "submodule", "update", "--init", "--recursive"]
    if depth > 0:
        args.extend(["--depth", str(depth)])
    return args


def update_submodules(invoker: ProcessInvoker, worktree: Path, depth: int = 1) -> bool:
    """Initialize and update submodules.

    Failures are logged, never raised: a missing submodule does not abort
    an otherwise successful checkout.

    Returns:
        True if the update succeeded.
    """
    result = invoker.invoke(GIT, git_submodule_args(worktree, depth), stream=True)
    if not result.ok:
        logger.warning(
            "Failed to update submodules (exit %d): %s",
            result.exit_status,
            result.stderr.strip(),
        )
    return result.ok


def clone(invoker: ProcessInvoker, config: CloneConfig) -> CloneResult:
    """Clone the repository and check out the requested revision.

    Args:
        invoker: Process invoker.
        config: Clone inputs.

    Returns:
        CloneResult with the resolved commit and source URL.

    Raises:
        ExternalToolError: If git clone failed.
        ResolutionError: If the revision could not be checked out.
    """
    logger.info(
        "Starting git clone: url=%s revision=%s destination=%s",
        config.url,
        config.revision or "(default)",
        config.destination,
    )
    config.destination.mkdir(parents=True, exist_ok=True)

    args = git_clone_args(config)
    logger.info("Executing: %s", shlex.join([GIT, *args]))
    invoker.invoke(GIT, args, stream=True).check()

    resolver = RevisionResolver(invoker, config.destination, depth=config.depth)
    resolved = resolver.resolve(config.revision)

    if config.submodules:
        update_submodules(invoker, config.destination, config.depth)

    logger.info("Git clone completed: commit=%s url=%s", resolved.commit_sha, config.url)
    return CloneResult(
        commit_sha=resolved.commit_sha,
        url=config.url,
        revision_kind=resolved.kind,
    )


__all__ = [
    "CloneConfig",
    "CloneResult",
    "clone",
    "git_clone_args",
    "git_submodule_args",
    "update_submodules",
]
