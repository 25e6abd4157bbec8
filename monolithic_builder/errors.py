"""Error definitions for monolithic_builder.

Every error carries a stable ``code`` for programmatic handling. Fatal
pipeline failures are reported as a single structured diagnostic built by
:func:`describe_error`, which walks the ``__cause__`` chain.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

# Error code constants
BUILDER_ERROR = "builder_error"
CONFIGURATION_ERROR = "configuration_error"
EXTERNAL_TOOL_ERROR = "external_tool_error"
AUTH_SETUP_ERROR = "auth_setup_error"
PARSE_ERROR = "parse_error"
RESOLUTION_ERROR = "resolution_error"
CANCELLED = "cancelled"
PIPELINE_ERROR = "pipeline_error"
INTERNAL_ERROR = "internal_error"


class BuilderError(Exception):
    """Base error for builder operations."""

    def __init__(self, message: str, code: str = BUILDER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(BuilderError):
    """Raised when a required input is missing or invalid."""

    def __init__(self, message: str, code: str = CONFIGURATION_ERROR) -> None:
        super().__init__(message, code=code)


class ExternalToolError(BuilderError):
    """Raised when an external tool exits with a non-zero status.

    Attributes:
        tool: Executable name.
        args: Arguments passed to the tool.
        exit_status: Process exit status (-1 on timeout, 127 if not found).
        stderr: Captured standard error, if any.
    """

    def __init__(
        self,
        tool: str,
        args: Sequence[str],
        exit_status: int,
        stderr: str = "",
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"{tool} {' '.join(args[:2])} exited with status {exit_status}"
            detail = stderr.strip()
            if detail:
                message = f"{message}: {detail.splitlines()[-1]}"
        super().__init__(message, code=EXTERNAL_TOOL_ERROR)
        self.tool = tool
        self.args_list = list(args)
        self.exit_status = exit_status
        self.stderr = stderr


class AuthSetupError(BuilderError):
    """Raised when credential files could not be materialized."""

    def __init__(self, message: str, code: str = AUTH_SETUP_ERROR) -> None:
        super().__init__(message, code=code)


class ParseError(BuilderError):
    """Raised when an external tool produced malformed output."""

    def __init__(self, message: str, code: str = PARSE_ERROR) -> None:
        super().__init__(message, code=code)


class ResolutionError(BuilderError):
    """Raised when no interpretation of a revision string succeeded."""

    def __init__(self, revision: str, code: str = RESOLUTION_ERROR) -> None:
        super().__init__(f"Failed to checkout revision: {revision}", code=code)
        self.revision = revision


class CancellationError(BuilderError):
    """Raised when the run was cancelled by an external signal."""

    def __init__(self, message: str = "Run cancelled", code: str = CANCELLED) -> None:
        super().__init__(message, code=code)


class PipelineError(BuilderError):
    """Raised when a pipeline step fails fatally.

    The originating error is always chained as ``__cause__``.
    """

    def __init__(self, message: str, state: str, code: str = PIPELINE_ERROR) -> None:
        super().__init__(message, code=code)
        self.state = state


def describe_error(exc: BaseException) -> dict[str, Any]:
    """Render an exception and its causal chain as a structured diagnostic.

    Args:
        exc: The exception that aborted the run.

    Returns:
        Dictionary suitable for JSON serialization.
    """
    result: dict[str, Any] = {
        "code": getattr(exc, "code", INTERNAL_ERROR),
        "message": str(exc),
    }
    state = getattr(exc, "state", None)
    if state is not None:
        result["state"] = state

    causes: list[dict[str, Any]] = []
    cause = exc.__cause__
    while cause is not None:
        entry: dict[str, Any] = {
            "code": getattr(cause, "code", INTERNAL_ERROR),
            "type": type(cause).__name__,
            "message": str(cause),
        }
        if isinstance(cause, ExternalToolError):
            entry["tool"] = cause.tool
            entry["exit_status"] = cause.exit_status
        causes.append(entry)
        cause = cause.__cause__
    if causes:
        result["causes"] = causes
    return result


__all__ = [
    "AUTH_SETUP_ERROR",
    "AuthSetupError",
    "BUILDER_ERROR",
    "BuilderError",
    "CANCELLED",
    "CONFIGURATION_ERROR",
    "CancellationError",
    "ConfigurationError",
    "EXTERNAL_TOOL_ERROR",
    "ExternalToolError",
    "INTERNAL_ERROR",
    "PARSE_ERROR",
    "PIPELINE_ERROR",
    "ParseError",
    "PipelineError",
    "RESOLUTION_ERROR",
    "ResolutionError",
    "describe_error",
]
