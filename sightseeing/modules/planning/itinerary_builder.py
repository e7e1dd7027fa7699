"""
modules/planning/itinerary_builder.py
---------------------------------------
Turns an ordered route into a per-stop itinerary with wall-clock times.

Pure function of (route, preferences): no lookups, no clock reads, so
calling it twice on the same input yields identical entries.
"""

from __future__ import annotations

from typing import Optional, Sequence

from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.modules.planning.schedule import walk_schedule
from sightseeing.modules.tool_usage.time_tool import (
    day_offset,
    split_week_minute,
    to_clock_time,
)
from sightseeing.schemas.itinerary import (
    Itinerary,
    ItineraryEntry,
    ItineraryTotals,
    RouteLeg,
    RouteResult,
)
from sightseeing.schemas.place import Place, SchedulingPreferences


class ItineraryAssembler:

    def __init__(self, availability: Optional[AvailabilityModel] = None) -> None:
        self.availability = availability if availability is not None else AvailabilityModel()

    def assemble(self, result: RouteResult, preferences: SchedulingPreferences) -> Itinerary:
        return self.schedule(result.places, result.legs, preferences, start_leg=result.start_leg)

    def schedule(
        self,
        stops: Sequence[Place],
        legs: Sequence[RouteLeg],
        preferences: SchedulingPreferences,
        start_leg: Optional[RouteLeg] = None,
    ) -> Itinerary:
        """
        Walk the stops in order, waiting for opening where needed.

        A stop that never opens within the look-ahead is scheduled on arrival
        rather than dropped; the route is taken as given. With a start_leg
        the first arrival comes after travelling from the start location.
        """
        if len(legs) != max(0, len(stops) - 1):
            raise ValueError("route legs do not match its places")

        start_week = preferences.start_week_minute
        start_minute = preferences.start_minute
        timings = walk_schedule(
            stops,
            [leg.travel_minutes for leg in legs],
            start_week,
            self.availability,
            strict=False,
            first_leg=start_leg.travel_minutes if start_leg else 0.0,
        ) or []

        entries: list[ItineraryEntry] = []
        for idx, (place, timing) in enumerate(zip(stops, timings)):
            weekday, arrival_minute = split_week_minute(start_week + timing.arrival)
            _, start_of_visit = split_week_minute(start_week + timing.visit_start)
            _, departure_minute = split_week_minute(start_week + timing.departure)
            departure_clock = to_clock_time(departure_minute)
            next_leg = legs[idx] if idx < len(legs) else None
            entries.append(
                ItineraryEntry(
                    sequence=idx + 1,
                    place_id=place.id,
                    name=place.name,
                    weekday=weekday,
                    day_offset=day_offset(start_minute, timing.arrival),
                    arrival_time=to_clock_time(arrival_minute),
                    wait_minutes=timing.wait_minutes,
                    visit_start=to_clock_time(start_of_visit),
                    visit_end=departure_clock,
                    departure_time=departure_clock,
                    visit_duration_minutes=place.visit_duration_minutes,
                    elapsed_minutes=timing.departure,
                    travel_minutes_to_next=next_leg.travel_minutes if next_leg else None,
                    distance_km_to_next=next_leg.distance_km if next_leg else None,
                )
            )

        travelled = [start_leg, *legs] if start_leg else list(legs)
        totals = ItineraryTotals(
            travel_minutes=sum(leg.travel_minutes for leg in travelled),
            visit_minutes=sum(p.visit_duration_minutes for p in stops),
            wait_minutes=sum(t.wait_minutes for t in timings),
            elapsed_minutes=timings[-1].departure if timings else 0.0,
            distance_km=sum(leg.distance_km for leg in travelled),
            entry_fee=sum(p.entry_fee for p in stops),
        )
        return Itinerary(entries=tuple(entries), totals=totals)


def build_itinerary(
    route_result: RouteResult,
    preferences: SchedulingPreferences,
    assembler: Optional[ItineraryAssembler] = None,
) -> list[ItineraryEntry]:
    """One entry per stop of `route_result`, in visiting order."""
    assembler = assembler if assembler is not None else ItineraryAssembler()
    return list(assembler.assemble(route_result, preferences).entries)
