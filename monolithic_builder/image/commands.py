"""Argument vectors for buildah, skopeo and the rootless wrapper.

Every function here is pure: the same inputs always produce the same
list of strings, so command composition is tested without running any
tool. Time-dependent output (the expiration label) takes ``now`` as an
argument.
"""

from __future__ import annotations

import logging
import shlex
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from monolithic_builder.image.duration import parse_duration

if TYPE_CHECKING:
    from monolithic_builder.image.models import BuildConfig

logger = logging.getLogger(__name__)

BUILDAH = "buildah"
SKOPEO = "skopeo"
UNSHARE = "unshare"

TRANSPORT = "docker://"
TLS_VERIFY_DISABLED = "--tls-verify=false"

# Registry round trips retried by the existence probe
PROBE_RETRY_TIMES = 3

COMMIT_LABEL = "io.konflux.commit"
EXPIRES_LABEL = "quay.expires-after"
EXPIRES_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Mount point of the prefetch directory inside hermetic build containers
PREFETCH_MOUNT = "/cachi2"

# Subordinate id range mapped into the rootless user namespace
ID_MAP = "1,1,65536"


def registry_ref(image_url: str) -> str:
    """Qualify an image reference with the registry transport."""
    return f"{TRANSPORT}{image_url}"


def _tls_flags(tls_verify: bool) -> list[str]:
    return [] if tls_verify else [TLS_VERIFY_DISABLED]


def expiration_label(duration: str, now: datetime) -> str | None:
    """Compose the expiration label value for ``now + duration``.

    Returns:
        ``quay.expires-after=<timestamp>``, or None if the duration is
        zero, unparseable or past the representable date range.
    """
    delta = parse_duration(duration)
    if not delta:
        return None
    try:
        expires = (now + delta).astimezone(timezone.utc)
    except OverflowError:
        logger.warning("Ignoring out-of-range expiration: %r", duration)
        return None
    return f"{EXPIRES_LABEL}={expires.strftime(EXPIRES_FORMAT)}"


def buildah_build_args(config: BuildConfig, now: datetime | None = None) -> list[str]:
    """Compose the ``buildah build`` arguments.

    Hermetic builds with prefetch input run without network and see the
    prefetch directory at ``/cachi2``. The generated environment file is
    not applied by buildah: Containerfiles source ``/cachi2/cachi2.env``
    in the RUN steps that need the prefetched dependencies.

    Args:
        config: Build inputs.
        now: Reference time for the expiration label (defaults to now).

    Returns:
        Arguments for buildah, without the executable name. The build
        context is always last.
    """
    args = ["build", "--file", config.dockerfile, "--tag", config.image_url]

    args.extend(_tls_flags(config.tls_verify))

    for build_arg in config.build_args:
        if build_arg:
            args.extend(["--build-arg", build_arg])

    if config.build_args_file:
        args.extend(["--build-arg-file", config.build_args_file])

    # Hermetic mode without declared dependencies changes nothing
    if config.hermetic and config.prefetch_input:
        if config.prefetch_path:
            args.extend(["--volume", f"{config.prefetch_path}:{PREFETCH_MOUNT}:Z"])
        args.append("--network=none")

    if config.commit_sha:
        args.extend(["--label", f"{COMMIT_LABEL}={config.commit_sha}"])

    if config.image_expires_after:
        label = expiration_label(
            config.image_expires_after, now or datetime.now(timezone.utc)
        )
        if label:
            args.extend(["--label", label])

    args.append(config.context)
    return args


def unshare_command(buildah_args: list[str], workdir: str) -> list[str]:
    """Wrap a buildah invocation for rootless execution.

    The inner command is passed to ``sh -c`` as a single string; each
    argument is quoted separately so values with spaces or shell
    metacharacters survive the inner shell.

    Args:
        buildah_args: Arguments for buildah (see buildah_build_args).
        workdir: Working directory inside the namespace.

    Returns:
        Full command, starting with the ``unshare`` executable.
    """
    inner = shlex.join([BUILDAH, *buildah_args])
    return [
        UNSHARE,
        "-Uf",
        "--keep-caps",
        "-r",
        "--map-users",
        ID_MAP,
        "--map-groups",
        ID_MAP,
        "-w",
        workdir,
        "--mount",
        "--",
        "sh",
        "-c",
        inner,
    ]


def buildah_push_args(image_url: str, tls_verify: bool = True) -> list[str]:
    """Compose ``buildah push`` arguments for the locally built image."""
    return ["push", *_tls_flags(tls_verify), image_url, registry_ref(image_url)]


def skopeo_exists_args(image_url: str, tls_verify: bool = True) -> list[str]:
    """Compose the raw-manifest probe used as an existence check.

    Transient registry errors are retried so a flaky registry does not
    turn into a needless rebuild.
    """
    return [
        "inspect",
        "--raw",
        "--retry-times",
        str(PROBE_RETRY_TIMES),
        *_tls_flags(tls_verify),
        registry_ref(image_url),
    ]


def skopeo_inspect_args(image_url: str, tls_verify: bool = True) -> list[str]:
    """Compose ``skopeo inspect`` arguments (JSON output with a Digest)."""
    return ["inspect", *_tls_flags(tls_verify), registry_ref(image_url)]


def manifest_create_args(manifest_name: str) -> list[str]:
    return ["manifest", "create", manifest_name]


def manifest_add_args(
    manifest_name: str, image_ref: str, tls_verify: bool = True
) -> list[str]:
    return [
        "manifest",
        "add",
        *_tls_flags(tls_verify),
        manifest_name,
        registry_ref(image_ref),
    ]


def manifest_push_args(
    manifest_name: str, image_url: str, tls_verify: bool = True
) -> list[str]:
    return [
        "manifest",
        "push",
        "--all",
        *_tls_flags(tls_verify),
        manifest_name,
        registry_ref(image_url),
    ]


def manifest_rm_args(manifest_name: str) -> list[str]:
    return ["manifest", "rm", manifest_name]


__all__ = [
    "BUILDAH",
    "COMMIT_LABEL",
    "EXPIRES_LABEL",
    "PREFETCH_MOUNT",
    "SKOPEO",
    "UNSHARE",
    "buildah_build_args",
    "buildah_push_args",
    "expiration_label",
    "manifest_add_args",
    "manifest_create_args",
    "manifest_push_args",
    "manifest_rm_args",
    "registry_ref",
    "skopeo_exists_args",
    "skopeo_inspect_args",
    "unshare_command",
]
