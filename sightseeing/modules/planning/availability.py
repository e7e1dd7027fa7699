"""
modules/planning/availability.py
----------------------------------
Opening-hours checks for a place at a given weekday/time.

Rules:
  - boundaries are inclusive: open at exactly `open` and exactly `close`
  - close < open is an overnight window; the rule is evaluated against the
    schedule of the queried weekday only
  - DaySchedule.closed → closed all day
  - missing day, None entry or unparseable times → open (fail-open)
  - open == close → open all day
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from sightseeing import config
from sightseeing.modules.tool_usage.time_tool import (
    MINUTES_PER_DAY,
    parse_hhmm,
    split_week_minute,
    weekday_index,
)
from sightseeing.schemas.place import Place

logger = logging.getLogger(__name__)

_ALL_DAY: tuple[int, int] = (0, MINUTES_PER_DAY)


class AvailabilityModel:

    def __init__(self, lookahead_days: int = config.LOOKAHEAD_DAYS) -> None:
        if lookahead_days < 0:
            raise ValueError("lookahead_days must be >= 0")
        self.lookahead_days = lookahead_days

    def window(self, place: Place, weekday: int) -> Optional[tuple[int, int]]:
        """(open, close) minutes for `weekday`, or None when closed all day."""
        schedule = place.schedule_for(weekday)
        if schedule is None:
            return _ALL_DAY
        if schedule.closed:
            return None
        try:
            open_m = parse_hhmm(schedule.open)
            close_m = parse_hhmm(schedule.close)
        except ValueError:
            logger.debug("Unreadable hours for %s on day %d, assuming open", place.id, weekday)
            return _ALL_DAY
        if open_m == close_m:
            return _ALL_DAY
        return open_m, close_m

    def is_open(self, place: Place, weekday: Union[int, str], minute_of_day: float) -> bool:
        day = weekday_index(weekday)
        bounds = self.window(place, day)
        if bounds is None:
            return False
        open_m, close_m = bounds
        if close_m < open_m:
            return minute_of_day >= open_m or minute_of_day <= close_m
        return open_m <= minute_of_day <= close_m

    def next_open(
        self,
        place: Place,
        weekday: Union[int, str],
        minute_of_day: float,
    ) -> Optional[tuple[int, float]]:
        """
        Earliest (weekday, minute) at or after the query when the place is open,
        looking ahead at most `lookahead_days` days. None if it never opens.
        """
        day = weekday_index(weekday)
        if self.is_open(place, day, minute_of_day):
            return day, minute_of_day

        horizon = self.lookahead_days * MINUTES_PER_DAY
        for offset in range(self.lookahead_days + 1):
            candidate_day = (day + offset) % 7
            bounds = self.window(place, candidate_day)
            if bounds is None:
                continue
            open_m = bounds[0]
            if offset == 0 and open_m <= minute_of_day:
                continue
            if offset * MINUTES_PER_DAY + open_m - minute_of_day > horizon:
                break
            return candidate_day, float(open_m)
        return None

    def wait_minutes(self, place: Place, at_week_minute: float) -> Optional[float]:
        """Minutes to wait from `at_week_minute` until open; 0 if open, None if never."""
        day, minute = split_week_minute(at_week_minute)
        found = self.next_open(place, day, minute)
        if found is None:
            return None
        open_day, open_minute = found
        days_ahead = (open_day - day) % 7
        return days_ahead * MINUTES_PER_DAY + open_minute - minute
