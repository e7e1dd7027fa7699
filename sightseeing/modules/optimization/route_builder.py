"""
modules/optimization/route_builder.py
---------------------------------------
Chooses and runs the construction strategy for one request.

  GREEDY : multi-start greedy (greedy.py)
  EXACT  : multi-start greedy to pick the stop set and first stop, then the
           bitmask DP (exact.py) reorders that set for minimum travel. The DP
           order is kept only if it still fits opening hours and budget.

EXACT is selected for level "optimal" (or when asked for explicitly) and
silently degrades to GREEDY above config.DP_MAX_PLACES places.

Relaxed pass: when the strict pass schedules nothing, construction is
retried once with budget × RELAXED_BUDGET_FACTOR and waits for opening not
charged against the budget. Places that never open stay excluded, and the
entry-fee cap is never relaxed.

The first stop is fixed by greedy construction, so the leg from the start
location is the same for every reordering and only matters for scheduling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from sightseeing import config
from sightseeing.modules.optimization.exact import path_travel, solve_exact
from sightseeing.modules.optimization.greedy import GreedyConstructor, GreedyRun
from sightseeing.modules.optimization.heuristic import normalise_weights, place_value
from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.modules.planning.schedule import walk_schedule
from sightseeing.schemas.place import Place, SchedulingPreferences
from sightseeing.schemas.travel import TravelMatrix

logger = logging.getLogger(__name__)


class RouteStrategy(str, Enum):
    GREEDY = "greedy"
    EXACT = "exact"


def select_strategy(
    n_places: int,
    level: str,
    requested: Optional[str] = None,
    dp_max_places: int = config.DP_MAX_PLACES,
) -> RouteStrategy:
    wanted = RouteStrategy(requested) if requested else (
        RouteStrategy.EXACT if level == "optimal" else RouteStrategy.GREEDY
    )
    if wanted is RouteStrategy.EXACT and n_places > dp_max_places:
        logger.info(
            "%d places exceed the exact-solver ceiling of %d; using greedy",
            n_places, dp_max_places,
        )
        return RouteStrategy.GREEDY
    return wanted


@dataclass
class CandidateSet:
    runs: list[GreedyRun] = field(default_factory=list)
    strategy: RouteStrategy = RouteStrategy.GREEDY
    relaxed: bool = False
    budget: float = 0.0
    charge_waits: bool = True


@dataclass(frozen=True)
class RoutePlan:
    """Chosen visiting order (indices into the request's place list)."""
    order: tuple[int, ...] = ()
    strategy: RouteStrategy = RouteStrategy.GREEDY
    relaxed: bool = False
    budget: float = 0.0
    charge_waits: bool = True
    score: float = 0.0
    candidates_tried: int = 0


class RouteBuilder:

    def __init__(
        self,
        availability: Optional[AvailabilityModel] = None,
        *,
        dp_max_places: int = config.DP_MAX_PLACES,
        relaxed_budget_factor: float = config.RELAXED_BUDGET_FACTOR,
        start_candidates: Optional[dict[str, int]] = None,
        proximity_scale: float = config.PROXIMITY_SCALE_MINUTES,
        wait_horizon: float = config.WAIT_HORIZON_MINUTES,
        travel_penalty: float = config.TRAVEL_PENALTY_PER_MINUTE,
    ) -> None:
        self.availability = availability if availability is not None else AvailabilityModel()
        self.dp_max_places = dp_max_places
        self.relaxed_budget_factor = relaxed_budget_factor
        self.start_candidates = dict(start_candidates or config.START_CANDIDATES)
        self.proximity_scale = proximity_scale
        self.wait_horizon = wait_horizon
        self.travel_penalty = travel_penalty

    # ── Public API ───────────────────────────────────────────────────────────

    def build(
        self,
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> RoutePlan:
        candidates = self.generate_candidates(places, matrix, preferences)
        return self.select_best(candidates, places, matrix, preferences)

    def generate_candidates(
        self,
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> CandidateSet:
        strategy = select_strategy(
            len(places), preferences.optimization_level, preferences.strategy, self.dp_max_places
        )
        k = self.start_candidates.get(preferences.optimization_level, 1)
        budget = preferences.time_budget_minutes

        runs = self._constructor(places, matrix, preferences, budget, True).construct_all(k)
        if runs:
            return CandidateSet(runs, strategy, relaxed=False, budget=budget, charge_waits=True)

        relaxed_budget = budget * self.relaxed_budget_factor
        logger.info(
            "No place fits %.0f min; retrying with relaxed budget %.0f min", budget, relaxed_budget
        )
        runs = self._constructor(places, matrix, preferences, relaxed_budget, False).construct_all(k)
        return CandidateSet(runs, strategy, relaxed=True, budget=relaxed_budget, charge_waits=False)

    def select_best(
        self,
        candidates: CandidateSet,
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> RoutePlan:
        best = GreedyConstructor.best(candidates.runs)
        if best is None:
            return RoutePlan(
                strategy=candidates.strategy,
                relaxed=candidates.relaxed,
                budget=candidates.budget,
                charge_waits=candidates.charge_waits,
            )

        order = list(best.order)
        if candidates.strategy is RouteStrategy.EXACT and len(order) > 2:
            order = self._exact_reorder(order, places, matrix, preferences, candidates)

        return RoutePlan(
            order=tuple(order),
            strategy=candidates.strategy,
            relaxed=candidates.relaxed,
            budget=candidates.budget,
            charge_waits=candidates.charge_waits,
            score=self.score(order, places, matrix),
            candidates_tried=len(candidates.runs),
        )

    def is_schedulable(
        self,
        order: Sequence[int],
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
        budget: float,
        charge_waits: bool = True,
    ) -> bool:
        stops = [places[i] for i in order]
        legs = [matrix.minutes(a, b) for a, b in zip(order, order[1:])]
        timings = walk_schedule(
            stops, legs, preferences.start_week_minute, self.availability,
            budget=budget, charge_waits=charge_waits,
            first_leg=matrix.minutes_from_origin(order[0]) if order else 0.0,
            fee_budget=preferences.max_entry_fee,
        )
        return timings is not None

    def score(self, order: Sequence[int], places: Sequence[Place], matrix: TravelMatrix) -> float:
        value = sum(place_value(places[i].rating) for i in order)
        travel = path_travel(order, matrix.durations)
        if order:
            travel += matrix.minutes_from_origin(order[0])
        return value - self.travel_penalty * travel

    # ── Internals ────────────────────────────────────────────────────────────

    def _constructor(
        self,
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
        budget: float,
        charge_waits: bool,
    ) -> GreedyConstructor:
        return GreedyConstructor(
            places,
            matrix,
            self.availability,
            start_week_minute=preferences.start_week_minute,
            budget=budget,
            weights=normalise_weights(
                preferences.priority_weight,
                preferences.time_weight,
                preferences.opening_weight,
                preferences.diversity_weight,
            ),
            charge_waits=charge_waits,
            fee_budget=preferences.max_entry_fee,
            proximity_scale=self.proximity_scale,
            wait_horizon=self.wait_horizon,
            travel_penalty=self.travel_penalty,
        )

    def _exact_reorder(
        self,
        order: list[int],
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
        candidates: CandidateSet,
    ) -> list[int]:
        greedy_travel = path_travel(order, matrix.durations)
        dp_order, dp_travel = solve_exact(matrix.durations, order, order[0])
        if dp_travel >= greedy_travel - 1e-9:
            return order
        if not self.is_schedulable(
            dp_order, places, matrix, preferences, candidates.budget, candidates.charge_waits
        ):
            logger.debug("Exact order violates opening hours or budget; keeping greedy order")
            return order
        logger.debug("Exact reorder: %.1f → %.1f min travel", greedy_travel, dp_travel)
        return dp_order
