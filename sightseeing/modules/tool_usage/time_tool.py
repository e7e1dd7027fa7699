"""
modules/tool_usage/time_tool.py
---------------------------------
Arithmetic tool: clock parsing and week-relative time arithmetic.
Local computation, no external API.

Conventions used across the optimizer:
  - minute of day  : 0 .. 1440, float allowed (sub-minute travel estimates)
  - weekday        : 0 = Monday .. 6 = Sunday (datetime.weekday() order)
  - week minute    : weekday * 1440 + minute of day, wrapped modulo one week
  - trip minute    : minutes elapsed since the trip start
"""

from __future__ import annotations

import math
import re
from datetime import time
from typing import Union

MINUTES_PER_DAY: int = 24 * 60
MINUTES_PER_WEEK: int = 7 * MINUTES_PER_DAY

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Strict form accepted for user-supplied start times ("9:05", "09:05", "23:59")
_START_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
# Opening-hour tables additionally allow "24:00" as an end-of-day close
_HOURS_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def is_valid_start_time(value: str) -> bool:
    return bool(_START_TIME_RE.match(value))


def parse_hhmm(value: object) -> int:
    """
    Parse an "HH:MM" opening-hours string into minutes since midnight.

    Raises:
        ValueError: value is not a string of the form HH:MM within 00:00-24:00.
    """
    if not isinstance(value, str):
        raise ValueError(f"expected 'HH:MM' string, got {value!r}")
    match = _HOURS_RE.match(value)
    if not match:
        raise ValueError(f"malformed time {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"time out of range {value!r}")
    return hours * 60 + minutes


def format_hhmm(minutes: float) -> str:
    """Minutes (any offset) rendered as a wall-clock "HH:MM" string."""
    total = int(round(minutes)) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def to_clock_time(minute_of_day: float) -> time:
    """Convert a (possibly fractional) minute of day into a datetime.time."""
    seconds = int(round(minute_of_day * 60)) % (MINUTES_PER_DAY * 60)
    return time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)


def weekday_index(value: Union[int, str]) -> int:
    """Accept 0-6 or a weekday name ("monday", "Mon") and return 0-6."""
    if isinstance(value, bool):
        raise ValueError(f"invalid weekday {value!r}")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"weekday must be 0 (Monday) .. 6 (Sunday), got {value}")
    if isinstance(value, str):
        name = value.strip().lower()
        for idx, day in enumerate(WEEKDAYS):
            if name == day or (len(name) >= 3 and day.startswith(name)):
                return idx
    raise ValueError(f"invalid weekday {value!r}")


def week_minute(weekday: int, minute_of_day: float) -> float:
    return (weekday * MINUTES_PER_DAY + minute_of_day) % MINUTES_PER_WEEK


def split_week_minute(value: float) -> tuple[int, float]:
    """Week minute → (weekday, minute of day)."""
    wrapped = value % MINUTES_PER_WEEK
    weekday = int(wrapped // MINUTES_PER_DAY)
    return weekday, wrapped - weekday * MINUTES_PER_DAY


def day_offset(start_minute_of_day: float, trip_minutes: float) -> int:
    """How many midnights have passed since the trip start."""
    return int(math.floor((start_minute_of_day + trip_minutes) / MINUTES_PER_DAY))


def format_duration(minutes: float) -> str:
    """
    Human-readable duration: 45 → "45m", 120 → "2h", 95 → "1h 35m".
    Negative or zero durations render as "0m".
    """
    if not minutes or minutes < 0:
        return "0m"
    hours = int(minutes // 60)
    mins = int(round(minutes - hours * 60))
    if mins == 60:
        hours, mins = hours + 1, 0
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"
