"""
modules/planning/route_planner.py
-----------------------------------
Single-day sightseeing route planner: the request entry point.

Pipeline per request (OptimizationStage):
  INIT                 validate request
  MATRIX_BUILT         TravelTimeProvider.build_matrix_async (concurrent lookups)
  CANDIDATES_GENERATED RouteBuilder.generate_candidates (multi-start greedy,
                       relaxed pass if nothing fits)
  BEST_SELECTED        RouteBuilder.select_best (exact reorder for EXACT)
  REFINED              LocalRefiner 2-opt; reverted if the schedule breaks
  ASSEMBLED            legs, totals, skip reasons, metrics, warnings

The whole pipeline runs under asyncio.wait_for(timeout_s). CPU-bound stages
run in a worker thread so the timeout can fire. On expiry no partial result
is returned and the provider abandons its pending lookups, so the blocking
wrapper returns without joining hung HTTP calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from sightseeing import config
from sightseeing.exceptions import InvalidPlanRequest, NoFeasibleRoute, OptimizationTimeout
from sightseeing.modules.optimization.local_search import LocalRefiner
from sightseeing.modules.optimization.route_builder import RouteBuilder, RoutePlan
from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.modules.planning.itinerary_builder import ItineraryAssembler
from sightseeing.modules.tool_usage.time_tool import format_duration, format_hhmm, parse_hhmm
from sightseeing.modules.tool_usage.travel_time_provider import TravelTimeProvider
from sightseeing.schemas.itinerary import (
    ItineraryEntry,
    RouteLeg,
    RouteMetrics,
    RouteResult,
    RouteWarning,
    SkippedPlace,
)
from sightseeing.schemas.place import Place, SchedulingPreferences
from sightseeing.schemas.travel import START_ID, TravelMatrix

logger = logging.getLogger(__name__)


class OptimizationStage(str, Enum):
    INIT = "init"
    MATRIX_BUILT = "matrix_built"
    CANDIDATES_GENERATED = "candidates_generated"
    BEST_SELECTED = "best_selected"
    REFINED = "refined"
    ASSEMBLED = "assembled"


@dataclass
class _RequestState:
    stage: OptimizationStage = OptimizationStage.INIT

    def advance(self, stage: OptimizationStage) -> None:
        logger.debug("Stage %s → %s", self.stage.value, stage.value)
        self.stage = stage


class RoutePlanner:
    """
    Usage:
        planner = RoutePlanner()
        result = planner.optimize(places, SchedulingPreferences(start_time="09:00"))
        entries = planner.build_itinerary(result, preferences)

    Keep one planner per process to share its travel-time cache across requests.
    """

    def __init__(
        self,
        provider: Optional[TravelTimeProvider] = None,
        availability: Optional[AvailabilityModel] = None,
        builder: Optional[RouteBuilder] = None,
        refiner: Optional[LocalRefiner] = None,
        assembler: Optional[ItineraryAssembler] = None,
        *,
        timeout_s: float = config.OPTIMIZE_TIMEOUT_S,
        max_places: int = config.MAX_PLACES,
    ) -> None:
        self.availability = availability or AvailabilityModel()
        self.provider = provider or TravelTimeProvider()
        self.builder = builder or RouteBuilder(self.availability)
        self.refiner = refiner or LocalRefiner()
        self.assembler = assembler or ItineraryAssembler(self.availability)
        self.timeout_s = timeout_s
        self.max_places = max_places

    # ── Public entry points ───────────────────────────────────────────────────

    def optimize(
        self,
        places: Sequence[Place],
        preferences: SchedulingPreferences,
        *,
        raise_on_infeasible: bool = False,
    ) -> RouteResult:
        """Blocking wrapper around optimize_async(); not for use inside a running loop."""
        return asyncio.run(
            self.optimize_async(places, preferences, raise_on_infeasible=raise_on_infeasible)
        )

    async def optimize_async(
        self,
        places: Sequence[Place],
        preferences: SchedulingPreferences,
        *,
        raise_on_infeasible: bool = False,
    ) -> RouteResult:
        """
        Plan the best single-day route over `places`.

        Raises:
            InvalidPlanRequest   : too many places or duplicate ids.
            InvalidCoordinates   : a place has out-of-range coordinates.
            MatrixBuildFailure   : travel data unavailable with fallback disabled.
            OptimizationTimeout  : the request exceeded timeout_s.
            NoFeasibleRoute      : nothing schedulable and raise_on_infeasible=True.
        """
        self._validate_request(places)
        state = _RequestState()
        try:
            result = await asyncio.wait_for(
                self._run(list(places), preferences, state), timeout=self.timeout_s
            )
        except asyncio.TimeoutError as exc:
            logger.error("Optimization timed out after %.1fs at stage %s", self.timeout_s, state.stage.value)
            self.provider.abandon_pending()
            raise OptimizationTimeout(self.timeout_s, state.stage.value) from exc

        if raise_on_infeasible and not result.feasible:
            raise NoFeasibleRoute(result)
        return result

    def build_itinerary(
        self, result: RouteResult, preferences: SchedulingPreferences
    ) -> list[ItineraryEntry]:
        return list(self.assembler.assemble(result, preferences).entries)

    # ── Pipeline ─────────────────────────────────────────────────────────────

    async def _run(
        self,
        places: list[Place],
        preferences: SchedulingPreferences,
        state: _RequestState,
    ) -> RouteResult:
        if not places:
            logger.info("No candidate places supplied")
            return RouteResult(
                feasible=False,
                optimization_level=preferences.optimization_level,
                infeasible_bound="no_candidates",
                metrics=RouteMetrics(
                    estimated_start_time=preferences.start_time,
                    estimated_end_time=preferences.start_time,
                ),
            )

        matrix = await self.provider.build_matrix_async(
            places, preferences.start_minute, origin=preferences.start_location
        )
        state.advance(OptimizationStage.MATRIX_BUILT)

        candidates = await asyncio.to_thread(
            self.builder.generate_candidates, places, matrix, preferences
        )
        state.advance(OptimizationStage.CANDIDATES_GENERATED)

        plan = await asyncio.to_thread(
            self.builder.select_best, candidates, places, matrix, preferences
        )
        state.advance(OptimizationStage.BEST_SELECTED)

        order = await asyncio.to_thread(self._refine, plan, places, matrix, preferences)
        state.advance(OptimizationStage.REFINED)

        result = self._assemble_result(order, plan, places, matrix, preferences)
        state.advance(OptimizationStage.ASSEMBLED)

        logger.info(
            "Route: %d/%d places, %s total, strategy=%s%s",
            result.visited_count,
            len(places),
            format_duration(result.total_time_minutes),
            result.strategy,
            " (relaxed)" if result.relaxed else "",
        )
        return result

    def _refine(
        self,
        plan: RoutePlan,
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> list[int]:
        order = list(plan.order)
        if len(order) < 3 or preferences.optimization_level == "fast":
            return order

        outcome = self.refiner.refine(order, matrix.durations)
        if not outcome.improved:
            return order
        if not self.builder.is_schedulable(
            outcome.order, places, matrix, preferences, plan.budget, plan.charge_waits
        ):
            logger.debug("2-opt order breaks opening hours or budget; reverting")
            return order
        return outcome.order

    # ── Result assembly ──────────────────────────────────────────────────────

    def _assemble_result(
        self,
        order: list[int],
        plan: RoutePlan,
        places: Sequence[Place],
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> RouteResult:
        stops = tuple(places[i] for i in order)
        legs = tuple(
            RouteLeg(
                from_id=places[a].id,
                to_id=places[b].id,
                travel_minutes=matrix.minutes(a, b),
                distance_km=matrix.km(a, b),
                is_fallback=bool(matrix.record(a, b) and matrix.record(a, b).is_fallback),
            )
            for a, b in zip(order, order[1:])
        )
        start_leg = None
        if order and matrix.has_origin:
            first = order[0]
            start_leg = RouteLeg(
                from_id=START_ID,
                to_id=places[first].id,
                travel_minutes=matrix.minutes_from_origin(first),
                distance_km=matrix.km_from_origin(first),
                is_fallback=matrix.origin_record(first).is_fallback,
            )
        totals = self.assembler.schedule(stops, legs, preferences, start_leg=start_leg).totals

        visited = set(order)
        skipped = tuple(
            SkippedPlace(place.id, self._skip_reason(place, preferences, totals.entry_fee))
            for idx, place in enumerate(places)
            if idx not in visited
        )
        feasible = bool(order)
        bound = None if feasible else self._infeasible_bound(skipped)
        if not feasible:
            logger.warning("No feasible route: %s constraint", bound)

        metrics = self._metrics(stops, skipped, totals.elapsed_minutes, totals.travel_minutes,
                                matrix, preferences)
        warnings = self._warnings(
            skipped, totals.elapsed_minutes, totals.travel_minutes, plan.relaxed and feasible,
            matrix, preferences,
        )

        return RouteResult(
            places=stops,
            legs=legs,
            start_leg=start_leg,
            total_time_minutes=totals.elapsed_minutes,
            total_travel_minutes=totals.travel_minutes,
            total_visit_minutes=totals.visit_minutes,
            total_wait_minutes=totals.wait_minutes,
            total_distance_km=totals.distance_km,
            feasible=feasible,
            efficiency=len(stops) / len(places),
            candidate_count=len(places),
            strategy=plan.strategy.value,
            optimization_level=preferences.optimization_level,
            relaxed=plan.relaxed and feasible,
            infeasible_bound=bound,
            skipped=skipped,
            warnings=warnings,
            metrics=metrics,
        )

    def _skip_reason(self, place: Place, preferences: SchedulingPreferences, fees_paid: float) -> str:
        if self.availability.wait_minutes(place, preferences.start_week_minute) is None:
            return "closed"
        cap = preferences.max_entry_fee
        if cap is not None and fees_paid + place.entry_fee > cap + 1e-9:
            return "entry_fee"
        return "time_budget"

    @staticmethod
    def _infeasible_bound(skipped: Sequence[SkippedPlace]) -> str:
        reasons = {s.reason for s in skipped}
        if reasons == {"closed"}:
            return "opening_hours"
        if reasons and reasons <= {"closed", "entry_fee"}:
            return "entry_fee"
        return "time_budget"

    def _metrics(
        self,
        stops: Sequence[Place],
        skipped: Sequence[SkippedPlace],
        elapsed: float,
        travel: float,
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> RouteMetrics:
        stats = self.provider.cache_stats()
        return RouteMetrics(
            places_visited=len(stops),
            places_skipped=len(skipped),
            average_rating=(sum(p.rating for p in stops) / len(stops)) if stops else None,
            total_entry_fee=sum(p.entry_fee for p in stops),
            category_distribution=dict(Counter(p.category for p in stops)),
            estimated_start_time=preferences.start_time,
            estimated_end_time=format_hhmm(preferences.start_minute + elapsed),
            total_time_display=format_duration(elapsed),
            travel_time_display=format_duration(travel),
            fallback_lookups=matrix.fallback_count,
            cache_hits=stats["hits"],
            cache_misses=stats["misses"],
        )

    @staticmethod
    def _warnings(
        skipped: Sequence[SkippedPlace],
        elapsed: float,
        travel: float,
        relaxed: bool,
        matrix: TravelMatrix,
        preferences: SchedulingPreferences,
    ) -> tuple[RouteWarning, ...]:
        warnings: list[RouteWarning] = []
        if skipped:
            warnings.append(RouteWarning(
                "INCOMPLETE_ROUTE",
                f"{len(skipped)} place(s) could not fit in the schedule",
            ))
        if elapsed > 0 and travel > elapsed * config.HIGH_TRAVEL_SHARE:
            warnings.append(RouteWarning(
                "HIGH_TRAVEL_TIME",
                f"Travel takes {format_duration(travel)} of {format_duration(elapsed)}",
            ))
        finish = preferences.start_minute + elapsed
        if elapsed > 0 and finish > parse_hhmm(config.LATE_FINISH_TIME):
            warnings.append(RouteWarning(
                "LATE_FINISH",
                f"Route ends at {format_hhmm(finish)}",
            ))
        if relaxed:
            warnings.append(RouteWarning(
                "RELAXED_CONSTRAINTS",
                "Nothing fit the original budget; budget extended and waits not counted",
            ))
        if matrix.fallback_count:
            warnings.append(RouteWarning(
                "FALLBACK_DISTANCES",
                f"{matrix.fallback_count} of {matrix.lookups} travel times are estimates",
            ))
        return tuple(warnings)

    # ── Validation ───────────────────────────────────────────────────────────

    def _validate_request(self, places: Sequence[Place]) -> None:
        if len(places) > self.max_places:
            raise InvalidPlanRequest(
                f"at most {self.max_places} places per request, got {len(places)}"
            )
        seen: set[str] = set()
        for place in places:
            if place.id in seen:
                raise InvalidPlanRequest(f"duplicate place id {place.id!r}")
            seen.add(place.id)
