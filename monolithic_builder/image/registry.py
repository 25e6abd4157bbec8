"""Registry probes through skopeo.

This module handles:
- Existence checks for a destination reference
- Digest resolution from ``skopeo inspect`` JSON output
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

from monolithic_builder.errors import ParseError
from monolithic_builder.image.commands import (
    SKOPEO,
    skopeo_exists_args,
    skopeo_inspect_args,
)

if TYPE_CHECKING:
    from monolithic_builder.process import ProcessInvoker

logger = logging.getLogger(__name__)

_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")


def check_image_exists(
    invoker: ProcessInvoker, image_url: str, tls_verify: bool = True
) -> bool:
    """Check whether a reference resolves to a manifest in the registry.

    Args:
        invoker: Process invoker.
        image_url: Image reference to probe.
        tls_verify: Verify registry TLS certificates.

    Returns:
        True if the raw manifest could be read.

    Raises:
        ExternalToolError: If skopeo could not be run at all.
    """
    result = invoker.invoke(SKOPEO, skopeo_exists_args(image_url, tls_verify))
    if not result.ok:
        logger.debug(
            "Existence probe for %s exited %d: %s",
            image_url,
            result.exit_status,
            result.stderr.strip(),
        )
    return result.ok


def parse_digest(output: str) -> str:
    """Extract the ``Digest`` field from ``skopeo inspect`` output.

    Raises:
        ParseError: If the output is not JSON or has no valid digest.
    """
    try:
        document = json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse skopeo output: {e}") from e

    if not isinstance(document, dict):
        raise ParseError("Unexpected skopeo output: not a JSON object")
    digest = document.get("Digest")
    if not isinstance(digest, str) or not _DIGEST_RE.match(digest):
        raise ParseError("Digest not found in skopeo output")
    return digest


def get_image_digest(
    invoker: ProcessInvoker, image_url: str, tls_verify: bool = True
) -> str:
    """Resolve the content digest of a pushed reference.

    Raises:
        ExternalToolError: If skopeo inspect failed.
        ParseError: If its output held no digest.
    """
    result = invoker.invoke(SKOPEO, skopeo_inspect_args(image_url, tls_verify))
    result.check()
    return parse_digest(result.stdout)


__all__ = ["check_image_exists", "get_image_digest", "parse_digest"]
