"""
schemas/place.py
----------------
Pydantic models for optimizer inputs: places, their weekly opening hours,
and the traveller's scheduling preferences.

Validation happens here, at the boundary; everything downstream assumes a
well-formed Place / SchedulingPreferences.
"""

from __future__ import annotations

import math
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sightseeing import config
from sightseeing.modules.tool_usage.time_tool import (
    WEEKDAYS,
    is_valid_start_time,
    parse_hhmm,
    weekday_index,
)

OptimizationLevel = Literal["fast", "balanced", "optimal"]


class DaySchedule(BaseModel):
    """
    Opening hours for one weekday.

    closed=True            → closed all day (open/close ignored)
    open == close          → open all day
    close < open           → overnight window (e.g. 22:00-02:00)
    Unparseable open/close strings are kept as-is; availability treats them
    as "unknown" and keeps the place open.
    """
    model_config = ConfigDict(frozen=True)

    open: Optional[str] = None
    close: Optional[str] = None
    closed: bool = False

    @classmethod
    def closed_all_day(cls) -> "DaySchedule":
        return cls(closed=True)


class Place(BaseModel):
    """
    A candidate point of interest.

    opening_hours is keyed by lower-case weekday name; a missing day (or a
    None entry) means "hours unknown" and is treated as open all day.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    latitude: float
    longitude: float
    category: str = "general"
    visit_duration_minutes: float = Field(gt=0)
    rating: float = 4.0
    entry_fee: float = Field(default=0.0, ge=0)
    opening_hours: dict[str, Optional[DaySchedule]] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("place id must not be empty")
        return v

    @field_validator("latitude")
    @classmethod
    def latitude_in_range(cls, v: float) -> float:
        if not math.isfinite(v) or not -90.0 <= v <= 90.0:
            raise ValueError(f"latitude must be within [-90, 90], got {v}")
        return v

    @field_validator("longitude")
    @classmethod
    def longitude_in_range(cls, v: float) -> float:
        if not math.isfinite(v) or not -180.0 <= v <= 180.0:
            raise ValueError(f"longitude must be within [-180, 180], got {v}")
        return v

    @field_validator("opening_hours", mode="before")
    @classmethod
    def normalise_weekday_keys(cls, v):
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("opening_hours must be a mapping of weekday → schedule")
        normalised = {}
        for key, schedule in v.items():
            day = WEEKDAYS[weekday_index(key)]
            if isinstance(schedule, str) and schedule.strip().lower() == "closed":
                schedule = DaySchedule.closed_all_day()
            normalised[day] = schedule
        return normalised

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)

    def schedule_for(self, weekday: int) -> Optional[DaySchedule]:
        return self.opening_hours.get(WEEKDAYS[weekday])


class SchedulingPreferences(BaseModel):
    """
    Per-request scheduling knobs.

    Weights need not sum to 1; they are normalised before scoring.
    strategy=None lets the optimization level pick (exact for "optimal").

    start_location : (lat, lon) the day starts from; its leg to the first
                     stop counts against the time budget. None starts the
                     day at the first stop.
    max_entry_fee  : cap on the summed entry fees of visited places.
    """
    model_config = ConfigDict(frozen=True)

    start_time: str = "09:00"
    start_weekday: int = 0                # 0 = Monday
    time_budget_minutes: float = Field(default=480.0, gt=0)
    priority_weight: float = Field(default=config.DEFAULT_PRIORITY_WEIGHT, ge=0)
    time_weight: float = Field(default=config.DEFAULT_TIME_WEIGHT, ge=0)
    opening_weight: float = Field(default=config.DEFAULT_OPENING_WEIGHT, ge=0)
    diversity_weight: float = Field(default=config.DEFAULT_DIVERSITY_WEIGHT, ge=0)
    optimization_level: OptimizationLevel = "balanced"
    strategy: Optional[Literal["greedy", "exact"]] = None
    start_location: Optional[tuple[float, float]] = None
    max_entry_fee: Optional[float] = Field(default=None, ge=0)

    @field_validator("start_time")
    @classmethod
    def start_time_well_formed(cls, v: str) -> str:
        if not is_valid_start_time(v):
            raise ValueError(f"start_time must be HH:MM (00:00-23:59), got {v!r}")
        return v

    @field_validator("start_weekday", mode="before")
    @classmethod
    def weekday_from_name(cls, v: Union[int, str]) -> int:
        return weekday_index(v)

    @field_validator("start_location")
    @classmethod
    def start_location_in_range(cls, v: Optional[tuple[float, float]]) -> Optional[tuple[float, float]]:
        if v is None:
            return v
        lat, lon = v
        if not (math.isfinite(lat) and math.isfinite(lon)) or not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            raise ValueError(f"start_location must be a valid (lat, lon), got {v}")
        return v

    @model_validator(mode="after")
    def weights_not_all_zero(self) -> "SchedulingPreferences":
        total = self.priority_weight + self.time_weight + self.opening_weight + self.diversity_weight
        if total <= 0:
            raise ValueError("at least one scoring weight must be positive")
        return self

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start_time)

    @property
    def start_week_minute(self) -> int:
        return self.start_weekday * 24 * 60 + self.start_minute
