"""sightseeing — Single-day sightseeing route and itinerary optimizer."""

from __future__ import annotations

from typing import Optional, Sequence

from sightseeing import config
from sightseeing.exceptions import (
    InvalidCoordinates,
    InvalidPlanRequest,
    MatrixBuildFailure,
    NoFeasibleRoute,
    OptimizationTimeout,
    OptimizerError,
    ProviderUnavailable,
)
from sightseeing.modules.optimization.route_builder import RouteStrategy
from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.modules.planning.itinerary_builder import ItineraryAssembler, build_itinerary
from sightseeing.modules.planning.route_planner import OptimizationStage, RoutePlanner
from sightseeing.modules.tool_usage.distance_tool import GeoDistanceEstimator
from sightseeing.modules.tool_usage.maps_client import GoogleDistanceMatrixClient
from sightseeing.modules.tool_usage.time_tool import format_duration
from sightseeing.modules.tool_usage.travel_time_provider import TravelTimeCache, TravelTimeProvider
from sightseeing.schemas.itinerary import ItineraryEntry, RouteLeg, RouteResult
from sightseeing.schemas.place import DaySchedule, Place, SchedulingPreferences
from sightseeing.schemas.travel import DistanceRecord


def optimize(
    places: Sequence[Place],
    preferences: SchedulingPreferences,
    *,
    provider: Optional[TravelTimeProvider] = None,
    raise_on_infeasible: bool = False,
) -> RouteResult:
    """One-shot planning. Pass a shared `provider` to reuse its cache across calls."""
    return RoutePlanner(provider=provider).optimize(
        places, preferences, raise_on_infeasible=raise_on_infeasible
    )


async def optimize_async(
    places: Sequence[Place],
    preferences: SchedulingPreferences,
    *,
    provider: Optional[TravelTimeProvider] = None,
    raise_on_infeasible: bool = False,
) -> RouteResult:
    return await RoutePlanner(provider=provider).optimize_async(
        places, preferences, raise_on_infeasible=raise_on_infeasible
    )


__all__ = [
    "config",
    "optimize",
    "optimize_async",
    "build_itinerary",
    "RoutePlanner",
    "OptimizationStage",
    "RouteStrategy",
    "AvailabilityModel",
    "ItineraryAssembler",
    "GeoDistanceEstimator",
    "GoogleDistanceMatrixClient",
    "TravelTimeCache",
    "TravelTimeProvider",
    "format_duration",
    "Place",
    "DaySchedule",
    "SchedulingPreferences",
    "DistanceRecord",
    "RouteLeg",
    "RouteResult",
    "ItineraryEntry",
    "OptimizerError",
    "InvalidCoordinates",
    "InvalidPlanRequest",
    "ProviderUnavailable",
    "MatrixBuildFailure",
    "OptimizationTimeout",
    "NoFeasibleRoute",
]
