"""Image build models.

Plain dataclasses describing one build-container run's image inputs and
outputs. Instances are immutable; derive updated copies with
``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuildConfig:
    """Inputs for building and pushing one image.

    Attributes:
        image_url: Destination image reference (tag form).
        dockerfile: Path to the Dockerfile.
        context: Build context directory; also the working directory of
            the rootless wrapper.
        hermetic: Build without network access.
        prefetch_input: Prefetch input spec; empty disables prefetch.
        prefetch_path: Directory holding prefetched dependencies and the
            generated environment file.
        image_expires_after: Expiration duration string, e.g. ``2w``.
        commit_sha: Source commit id, labelled onto the image when known.
        build_args: ``KEY=value`` build arguments, in order.
        build_args_file: Optional build-argument file path.
        tls_verify: Verify registry TLS certificates.
        rebuild: Build even if the destination already exists.
        skip_checks: Skip the existence check (implies building).
    """

    image_url: str
    dockerfile: str = "./Dockerfile"
    context: str = "."
    hermetic: bool = False
    prefetch_input: str = ""
    prefetch_path: str = ""
    image_expires_after: str = ""
    commit_sha: str = ""
    build_args: tuple[str, ...] = ()
    build_args_file: str = ""
    tls_verify: bool = True
    rebuild: bool = False
    skip_checks: bool = False


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a build: the pushed reference and its digest.

    An empty ``image_digest`` means the digest is unknown; this is not an
    error.
    """

    image_url: str
    image_digest: str = ""


__all__ = ["BuildConfig", "BuildResult"]
