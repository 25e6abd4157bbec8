"""Build and push steps for container images.

This module handles:
- Running ``buildah build`` inside the rootless ``unshare`` wrapper
- Pushing the built image to its destination
"""

from __future__ import annotations

import logging
import shlex
from datetime import datetime
from typing import TYPE_CHECKING

from monolithic_builder.image.commands import (
    BUILDAH,
    buildah_build_args,
    buildah_push_args,
    unshare_command,
)

if TYPE_CHECKING:
    from monolithic_builder.image.models import BuildConfig
    from monolithic_builder.process import ProcessInvoker

logger = logging.getLogger(__name__)


def build_image(
    invoker: ProcessInvoker, config: BuildConfig, now: datetime | None = None
) -> list[str]:
    """Build the image described by ``config``.

    Args:
        invoker: Process invoker.
        config: Build inputs.
        now: Reference time for the expiration label.

    Returns:
        The full command that was executed.

    Raises:
        ExternalToolError: If the build failed.
    """
    cmd = unshare_command(buildah_build_args(config, now), config.context)
    logger.info("Executing buildah build: %s", cmd[-1])
    logger.info("Working directory: %s", config.context)
    invoker.invoke(cmd[0], cmd[1:], stream=True).check()
    return cmd


def push_image(invoker: ProcessInvoker, config: BuildConfig) -> None:
    """Push the locally built image to ``config.image_url``.

    Raises:
        ExternalToolError: If the push failed.
    """
    args = buildah_push_args(config.image_url, config.tls_verify)
    logger.info("Executing: %s", shlex.join([BUILDAH, *args]))
    invoker.invoke(BUILDAH, args, stream=True).check()


__all__ = ["build_image", "push_image"]
