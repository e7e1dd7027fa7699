"""
modules/optimization/local_search.py
--------------------------------------
2-opt improvement over an open path.

Each pass evaluates every segment reversal order[i..j] (i ≥ 1 when the first
stop is fixed) and applies the single best one that strictly lowers total
travel (best-improvement). Passes repeat until no reversal helps or
`max_passes` is reached.

The travel matrix may be asymmetric, so every candidate is costed in full
rather than by the symmetric 4-edge delta.

Only travel is looked at here. Opening hours and budget are re-checked by
the caller, which keeps the original order if the refined one no longer fits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sightseeing import config
from sightseeing.modules.optimization.exact import path_travel

logger = logging.getLogger(__name__)

_EPS = 1e-9


@dataclass(frozen=True)
class RefineOutcome:
    order: list[int]
    travel_before: float
    travel_after: float
    passes: int

    @property
    def improved(self) -> bool:
        return self.travel_after < self.travel_before - _EPS


class LocalRefiner:

    def __init__(self, max_passes: int = config.TWO_OPT_MAX_PASSES, fix_first: bool = True) -> None:
        if max_passes < 0:
            raise ValueError("max_passes must be >= 0")
        self.max_passes = max_passes
        self.fix_first = fix_first

    def refine(self, order: Sequence[int], durations: Sequence[Sequence[float]]) -> RefineOutcome:
        best = list(order)
        best_cost = path_travel(best, durations)
        initial = best_cost
        lo = 1 if self.fix_first else 0
        n = len(best)

        passes = 0
        while passes < self.max_passes:
            passes += 1
            improvement: Optional[tuple[list[int], float]] = None
            for i in range(lo, n - 1):
                for j in range(i + 1, n):
                    candidate = best[:i] + best[i:j + 1][::-1] + best[j + 1:]
                    cost = path_travel(candidate, durations)
                    if cost < best_cost - _EPS and (improvement is None or cost < improvement[1]):
                        improvement = (candidate, cost)
            if improvement is None:
                break
            best, best_cost = improvement

        if best_cost < initial - _EPS:
            logger.debug("2-opt: %.1f → %.1f min in %d pass(es)", initial, best_cost, passes)
        return RefineOutcome(order=best, travel_before=initial, travel_after=best_cost, passes=passes)
