"""
modules/planning/schedule.py
------------------------------
Time walk over an ordered list of stops. Shared by route construction
(feasibility while extending a run) and itinerary assembly (clock times),
so both always agree on arrival/wait/departure arithmetic.

All times are trip minutes (0 = trip start). The leg into the first stop is
`first_leg` (travel from the start location), zero when there is none.

Budget accounting ("charged" time):
    charged += travel + visit + (wait if charge_waits else 0)
With charge_waits=True, charged == departure from the current stop.

Entry fees accumulate in `fees`; with a fee_budget, a stop whose fee would
push the total past it is not schedulable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.schemas.place import Place

_EPS = 1e-9


@dataclass(frozen=True)
class StopTiming:
    travel_minutes: float     # leg into this stop
    arrival: float
    wait_minutes: float
    visit_start: float
    departure: float
    charged: float            # budget consumed up to departure
    fees: float = 0.0         # entry fees paid up to and including this stop


def advance(
    place: Place,
    travel_minutes: float,
    clock: float,
    charged: float,
    start_week_minute: float,
    availability: AvailabilityModel,
    *,
    budget: Optional[float] = None,
    charge_waits: bool = True,
    strict: bool = True,
    fees: float = 0.0,
    fee_budget: Optional[float] = None,
) -> Optional[StopTiming]:
    """
    Schedule one stop after departing the previous one at `clock`.

    Returns None when the place never opens within the look-ahead (strict),
    when the time budget would be exceeded, or when its entry fee does not
    fit the fee budget.
    """
    paid = fees + place.entry_fee
    if fee_budget is not None and paid > fee_budget + _EPS:
        return None
    arrival = clock + travel_minutes
    wait = availability.wait_minutes(place, start_week_minute + arrival)
    if wait is None:
        if strict:
            return None
        wait = 0.0
    visit_start = arrival + wait
    departure = visit_start + place.visit_duration_minutes
    spent = charged + travel_minutes + place.visit_duration_minutes
    if charge_waits:
        spent += wait
    if budget is not None and spent > budget + _EPS:
        return None
    return StopTiming(
        travel_minutes=travel_minutes,
        arrival=arrival,
        wait_minutes=wait,
        visit_start=visit_start,
        departure=departure,
        charged=spent,
        fees=paid,
    )


def walk_schedule(
    stops: Sequence[Place],
    leg_minutes: Sequence[float],
    start_week_minute: float,
    availability: AvailabilityModel,
    *,
    budget: Optional[float] = None,
    charge_waits: bool = True,
    strict: bool = True,
    first_leg: float = 0.0,
    fee_budget: Optional[float] = None,
) -> Optional[list[StopTiming]]:
    """Timings for every stop in order, or None if the order is not schedulable."""
    if len(leg_minutes) != max(0, len(stops) - 1):
        raise ValueError("need exactly one leg between each pair of consecutive stops")

    timings: list[StopTiming] = []
    clock = 0.0
    charged = 0.0
    fees = 0.0
    for idx, place in enumerate(stops):
        travel = leg_minutes[idx - 1] if idx else first_leg
        timing = advance(
            place, travel, clock, charged, start_week_minute, availability,
            budget=budget, charge_waits=charge_waits, strict=strict,
            fees=fees, fee_budget=fee_budget,
        )
        if timing is None:
            return None
        timings.append(timing)
        clock, charged, fees = timing.departure, timing.charged, timing.fees
    return timings
