"""Helpers for turning human-friendly durations and rates into seconds.

Accepted duration forms:
- int/float seconds: ``30``, ``1.5``
- ``timedelta`` instances
- strings with an optional unit suffix: ``"500ms"``, ``"30s"``, ``"5m"``,
  ``"1h"``, ``"1d"`` (a bare number means seconds)

Rate strings combine a request count and a period: ``"100/minute"``,
``"20/second"``, ``"5/10s"``.
"""

from __future__ import annotations

import math
import re
from datetime import timedelta

from ratewindow.core.errors import ValidationAppError

DurationLike = int | float | str | timedelta

_UNIT_SECONDS: dict[str, float] = {
    "ms": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "m": 60.0,
    "min": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

# Named periods used in rate strings such as "100/minute".
_PERIOD_SECONDS: dict[str, float] = {
    "second": 1.0,
    "minute": 60.0,
    "hour": 3600.0,
    "day": 86400.0,
}

_DURATION_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>[a-z]*)\s*$")


def parse_duration(value: DurationLike) -> float:
    """Convert a duration-like value into seconds.

    Args:
        value: Seconds as a number, a ``timedelta`` or a string with unit.

    Returns:
        Duration in (possibly fractional) seconds.

    Raises:
        ValidationAppError: If the value cannot be parsed or is not positive.

    Examples:
        >>> parse_duration("500ms")
        0.5
        >>> parse_duration("2m")
        120.0
        >>> parse_duration(timedelta(hours=1))
        3600.0
    """

    if isinstance(value, bool):
        raise _invalid_duration(value)

    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = _DURATION_RE.match(value.lower())
        if not match:
            raise _invalid_duration(value)
        unit = match.group("unit") or "s"
        if unit not in _UNIT_SECONDS:
            raise _invalid_duration(value)
        seconds = float(match.group("value")) * _UNIT_SECONDS[unit]
    else:
        raise _invalid_duration(value)

    if not math.isfinite(seconds) or seconds <= 0:
        raise _invalid_duration(value)
    return seconds


def window_to_ttl_seconds(value: DurationLike) -> int:
    """Convert a window duration into the whole-second TTL used by the store.

    Fractional seconds truncate toward zero. Windows shorter than one second
    are rejected because the store expires keys at second granularity.

    Raises:
        ValidationAppError: If the window is invalid or shorter than 1s.
    """

    seconds = parse_duration(value)
    ttl = int(seconds)
    if ttl < 1:
        raise ValidationAppError(
            code="window_too_short",
            message=f"Window must be at least 1 second, got {seconds:g}s",
            details={"hint": "Use a window of 1s or more"},
        )
    return ttl


def parse_rate(value: str) -> tuple[int, float]:
    """Parse a rate string into ``(max_requests, window_seconds)``.

    Args:
        value: Rate like ``"100/minute"`` or ``"5/10s"``.

    Returns:
        Tuple of request ceiling and window duration in seconds.

    Raises:
        ValidationAppError: If the format is invalid.
    """

    try:
        count_part, period_part = value.split("/")
    except (ValueError, AttributeError):
        raise _invalid_rate(value) from None

    count_part = count_part.strip()
    if not count_part.isdigit() or int(count_part) <= 0:
        raise _invalid_rate(value)

    period = period_part.strip().lower()
    if period in _PERIOD_SECONDS:
        window = _PERIOD_SECONDS[period]
    else:
        try:
            window = parse_duration(period)
        except ValidationAppError:
            raise _invalid_rate(value) from None

    return int(count_part), window


def _invalid_duration(value: object) -> ValidationAppError:
    return ValidationAppError(
        code="invalid_duration",
        message=f"Invalid duration: {value!r}",
        details={"hint": "Use seconds or a string such as '500ms', '30s', '5m', '1h'"},
    )


def _invalid_rate(value: object) -> ValidationAppError:
    return ValidationAppError(
        code="invalid_rate",
        message=f"Invalid rate format: {value!r}. Must be 'count/period'.",
        details={"hint": "Use e.g. '100/minute' or '5/10s'"},
    )
