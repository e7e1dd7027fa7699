"""
exceptions.py
-------------
Error taxonomy of the optimizer.

  InvalidCoordinates   - malformed coordinates; fails fast, never zero distance
  ProviderUnavailable  - external lookup down; recovered by the geometric fallback
  MatrixBuildFailure   - a pairwise lookup could not be resolved at all; fatal
  OptimizationTimeout  - wall-clock budget exceeded; no partial result
  NoFeasibleRoute      - nothing schedulable even after the relaxed pass
  InvalidPlanRequest   - request outside what the optimizer accepts
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sightseeing.schemas.itinerary import RouteResult


class OptimizerError(Exception):
    """Base class for every error raised by this package."""


class InvalidCoordinates(OptimizerError, ValueError):
    def __init__(self, latitude: float, longitude: float) -> None:
        super().__init__(f"invalid coordinates: ({latitude!r}, {longitude!r})")
        self.latitude = latitude
        self.longitude = longitude


class InvalidPlanRequest(OptimizerError, ValueError):
    pass


class ProviderUnavailable(OptimizerError):
    """
    The external travel-time service could not answer.

    `reason` is one of "missing_credentials" | "network" | "timeout" |
    "quota" | "bad_response".
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        message = reason if not detail else f"{reason}: {detail}"
        super().__init__(message)
        self.reason = reason
        self.detail = detail


class MatrixBuildFailure(OptimizerError):
    def __init__(self, failed_pairs: list[tuple[str, str]], cause: Optional[BaseException] = None) -> None:
        super().__init__(
            f"travel matrix incomplete: {len(failed_pairs)} pair(s) unresolved"
        )
        self.failed_pairs = failed_pairs
        self.cause = cause


class OptimizationTimeout(OptimizerError):
    def __init__(self, timeout_s: float, stage: str = "") -> None:
        where = f" during {stage}" if stage else ""
        super().__init__(f"optimization exceeded {timeout_s:g}s{where}")
        self.timeout_s = timeout_s
        self.stage = stage


class NoFeasibleRoute(OptimizerError):
    """
    Raised on request when no place can be scheduled.

    `bound` names the constraint that was hit ("opening_hours" |
    "entry_fee" | "time_budget" | "no_candidates") so callers can relax the right input.
    """

    def __init__(self, result: "RouteResult") -> None:
        bound = result.infeasible_bound or "unknown"
        super().__init__(f"no feasible route: {bound} constraint")
        self.result = result
        self.bound = bound
