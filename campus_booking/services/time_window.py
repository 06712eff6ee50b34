"""Wall-clock parsing and half-open interval helpers."""

from __future__ import annotations

import re
from datetime import time
from typing import Any

from campus_booking.services.errors import InvalidFormat, InvalidRange

_WALL_CLOCK_RE = re.compile(r"([0-9]{2}):([0-9]{2})")


def parse_wall_clock(value: str) -> int:
    """Return minutes since midnight for an ``HH:MM`` string."""

    if not isinstance(value, str):
        raise InvalidFormat(f"Expected HH:MM, got {value!r}")
    match = _WALL_CLOCK_RE.fullmatch(value)
    if not match:
        raise InvalidFormat(f"Invalid time {value!r}. Use HH:MM.")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidFormat(f"Invalid time {value!r}. Use HH:MM.")
    return hours * 60 + minutes


def format_wall_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def wall_clock_time(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


def is_before(start: Any, end: Any) -> bool:
    return start < end


def overlaps(a_start: Any, a_end: Any, b_start: Any, b_end: Any) -> bool:
    """Half-open ``[start, end)`` intersection; touching endpoints do not overlap."""

    return a_start < b_end and b_start < a_end


def require_range(start: Any, end: Any, label: str = "time range") -> None:
    if not is_before(start, end):
        raise InvalidRange(
            f"Invalid {label}: start must be before end",
            details={"start": str(start), "end": str(end)},
        )


def parse_wall_clock_range(start: str, end: str) -> tuple[int, int]:
    """Parse and validate a ``start < end`` pair of wall-clock strings."""

    start_min = parse_wall_clock(start)
    end_min = parse_wall_clock(end)
    require_range(start_min, end_min, label="wall-clock window")
    return start_min, end_min
