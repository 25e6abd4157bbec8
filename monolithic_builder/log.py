"""Logging setup for the command-line entry points.

Library modules only create module loggers; the CLI calls
:func:`setup_logging` once to attach a Rich handler writing to stderr.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "monolithic_builder"


def setup_logging(
    level: str = "INFO", console: Console | None = None
) -> logging.Logger:
    """Configure the root logger with a Rich handler.

    Args:
        level: Log level name.
        console: Console to log to (defaults to stderr).

    Returns:
        The package logger.
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())
    return logging.getLogger(LOGGER_NAME)


__all__ = ["LOGGER_NAME", "setup_logging"]
