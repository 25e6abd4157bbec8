"""Duration parsing for image expiration labels.

Accepts ``<n>h``, ``<n>d`` and ``<n>w`` as well as the generic duration
grammar used by container tooling (``90s``, ``1h30m``, ``1.5h``). Parsing is
best-effort: anything unparseable disables expiration instead of failing
the run.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

logger = logging.getLogger(__name__)

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_NUMBER = r"(?:\d+(?:\.\d*)?|\.\d+)"
_UNIT = r"(?:ns|us|µs|μs|ms|s|m|h)"
_GENERIC_RE = re.compile(rf"^([+-]?)((?:{_NUMBER}{_UNIT})+)$")
_COMPONENT_RE = re.compile(rf"({_NUMBER})({_UNIT})")
_CALENDAR_RE = re.compile(rf"^({_NUMBER})([dw])$")

_CALENDAR_HOURS = {"d": 24, "w": 24 * 7}


def _parse_generic(text: str) -> timedelta | None:
    """Parse a sequence of number+unit components, e.g. ``1h30m``."""
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    match = _GENERIC_RE.match(text)
    if not match:
        return None
    sign, body = match.groups()
    seconds = sum(
        float(number) * _UNIT_SECONDS[unit]
        for number, unit in _COMPONENT_RE.findall(body)
    )
    if sign == "-":
        seconds = -seconds
    return timedelta(seconds=seconds)


def parse_duration(text: str | None) -> timedelta:
    """Parse a human-authored duration string.

    Args:
        text: Duration such as ``24h``, ``2d``, ``1w`` or ``1h30m``.

    Returns:
        The parsed duration; ``timedelta(0)`` for empty, invalid or
        out-of-range input.
    """
    if not text:
        return timedelta(0)
    text = text.strip()

    try:
        calendar = _CALENDAR_RE.match(text)
        if calendar:
            number, unit = calendar.groups()
            return timedelta(hours=float(number) * _CALENDAR_HOURS[unit])
        parsed = _parse_generic(text)
    except OverflowError:
        parsed = None

    if parsed is None:
        logger.warning("Ignoring unparseable duration: %r", text)
        return timedelta(0)
    return parsed


__all__ = ["parse_duration"]
