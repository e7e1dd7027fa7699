"""
schemas/itinerary.py
--------------------
Dataclass definitions for optimizer output: the ordered route with its
totals, and the per-stop itinerary derived from it.

Units:
  - all durations : minutes
  - all distances : kilometres
  - clock fields  : datetime.time (wall clock at the stop)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from typing import Optional

from sightseeing.schemas.place import Place


@dataclass(frozen=True)
class RouteLeg:
    """Travel between two consecutive stops."""
    from_id: str
    to_id: str
    travel_minutes: float
    distance_km: float
    is_fallback: bool = False


@dataclass(frozen=True)
class SkippedPlace:
    place_id: str
    reason: str          # "closed" | "entry_fee" | "time_budget"


@dataclass(frozen=True)
class RouteWarning:
    type: str            # INCOMPLETE_ROUTE | HIGH_TRAVEL_TIME | LATE_FINISH | RELAXED_CONSTRAINTS | FALLBACK_DISTANCES
    message: str


@dataclass(frozen=True)
class RouteMetrics:
    places_visited: int = 0
    places_skipped: int = 0
    average_rating: Optional[float] = None
    total_entry_fee: float = 0.0
    category_distribution: dict[str, int] = field(default_factory=dict)
    estimated_start_time: str = ""
    estimated_end_time: str = ""
    total_time_display: str = "0m"
    travel_time_display: str = "0m"
    fallback_lookups: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


@dataclass(frozen=True)
class RouteResult:
    """
    Output of one optimization request.

    legs[i] describes travel from places[i] to places[i + 1], so
    len(legs) == max(0, len(places) - 1). start_leg is the travel from the
    start location to places[0] (None without a start location).
    total_time_minutes runs from the trip start to the departure from the
    last stop and includes waits and the start leg.
    """
    places: tuple[Place, ...] = ()
    legs: tuple[RouteLeg, ...] = ()
    start_leg: Optional[RouteLeg] = None
    total_time_minutes: float = 0.0
    total_travel_minutes: float = 0.0
    total_visit_minutes: float = 0.0
    total_wait_minutes: float = 0.0
    total_distance_km: float = 0.0
    feasible: bool = False
    efficiency: float = 0.0          # visited / candidates
    candidate_count: int = 0
    strategy: str = ""
    optimization_level: str = ""
    relaxed: bool = False
    infeasible_bound: Optional[str] = None   # "opening_hours" | "entry_fee" | "time_budget" | "no_candidates"
    skipped: tuple[SkippedPlace, ...] = ()
    warnings: tuple[RouteWarning, ...] = ()
    metrics: RouteMetrics = field(default_factory=RouteMetrics)

    @property
    def place_ids(self) -> list[str]:
        return [p.id for p in self.places]

    @property
    def visited_count(self) -> int:
        return len(self.places)


@dataclass(frozen=True)
class ItineraryEntry:
    """
    One scheduled stop. `elapsed_minutes` counts from trip start to departure.

    visit_end and departure_time are the same instant: the traveller leaves
    as soon as the visit ends.
    """
    sequence: int                    # 1-based
    place_id: str
    name: str
    weekday: int                     # weekday of arrival, 0 = Monday
    day_offset: int                  # midnights crossed since trip start
    arrival_time: time
    wait_minutes: float
    visit_start: time
    visit_end: time
    departure_time: time
    visit_duration_minutes: float
    elapsed_minutes: float
    travel_minutes_to_next: Optional[float] = None
    distance_km_to_next: Optional[float] = None


@dataclass(frozen=True)
class ItineraryTotals:
    travel_minutes: float = 0.0
    visit_minutes: float = 0.0
    wait_minutes: float = 0.0
    elapsed_minutes: float = 0.0
    distance_km: float = 0.0
    entry_fee: float = 0.0


@dataclass(frozen=True)
class Itinerary:
    entries: tuple[ItineraryEntry, ...] = ()
    totals: ItineraryTotals = field(default_factory=ItineraryTotals)
