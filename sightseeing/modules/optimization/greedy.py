"""
modules/optimization/greedy.py
--------------------------------
Multi-start greedy route construction.

For each start candidate a run is built by repeatedly appending the
unvisited place with the highest composite score (heuristic.py) among those
still schedulable:
    - opens within the look-ahead (wait until opening is allowed)
    - departure stays within the time budget
    - its entry fee fits the fee budget, if one is set
The run stops when no candidate is schedulable. The best run by
value(run) (heuristic.py) wins; ties go to the earlier start candidate.

Start candidates are ranked by (open on arrival, rating) and the top k
are tried, where k comes from the optimization level (config.START_CANDIDATES).
The first stop is reached from the start location when the matrix has one.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sightseeing import config
from sightseeing.modules.optimization.heuristic import (
    Weights,
    composite_score,
    diversity_term,
    place_value,
    rating_term,
)
from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.modules.planning.schedule import StopTiming, advance
from sightseeing.schemas.place import Place
from sightseeing.schemas.travel import TravelMatrix

logger = logging.getLogger(__name__)


@dataclass
class GreedyRun:
    """One constructed route: indices into the place list, in visiting order."""
    order: list[int] = field(default_factory=list)
    timings: list[StopTiming] = field(default_factory=list)
    travel_minutes: float = 0.0
    value: float = 0.0           # Σ place_value
    score: float = 0.0           # value − λ · travel_minutes

    @property
    def elapsed(self) -> float:
        return self.timings[-1].departure if self.timings else 0.0


class GreedyConstructor:
    """
    Usage:
        greedy = GreedyConstructor(places, matrix, availability, start_week_minute=..., budget=480)
        runs = greedy.construct_all(k=3)
    """

    def __init__(
        self,
        places: Sequence[Place],
        matrix: TravelMatrix,
        availability: AvailabilityModel,
        *,
        start_week_minute: float,
        budget: float,
        weights: Weights,
        charge_waits: bool = True,
        fee_budget: Optional[float] = None,
        proximity_scale: float = config.PROXIMITY_SCALE_MINUTES,
        wait_horizon: float = config.WAIT_HORIZON_MINUTES,
        travel_penalty: float = config.TRAVEL_PENALTY_PER_MINUTE,
    ) -> None:
        if matrix.size != len(places):
            raise ValueError("matrix size does not match place list")
        self.places = list(places)
        self.matrix = matrix
        self.availability = availability
        self.start_week_minute = start_week_minute
        self.budget = budget
        self.weights = weights
        self.charge_waits = charge_waits
        self.fee_budget = fee_budget
        self.proximity_scale = proximity_scale
        self.wait_horizon = wait_horizon
        self.travel_penalty = travel_penalty

    # ── Start candidates ──────────────────────────────────────────────────────

    def start_candidates(self, k: int) -> list[int]:
        """Top-k schedulable first stops, best first."""
        ranked: list[tuple[float, int]] = []
        for idx, place in enumerate(self.places):
            timing = self._step(None, idx, None)
            if timing is None:
                continue
            open_now = 1.0 if timing.wait_minutes == 0.0 else 0.0
            ranked.append((open_now + rating_term(place.rating), idx))
        ranked.sort(key=lambda item: (-item[0], item[1]))
        return [idx for _, idx in ranked[:max(0, k)]]

    # ── Construction ─────────────────────────────────────────────────────────

    def construct(self, start: int) -> GreedyRun:
        run = GreedyRun()
        first = self._step(None, start, None)
        if first is None:
            return run
        self._append(run, start, first)

        visited = {start}
        categories = Counter([self.places[start].category])
        while True:
            current = run.order[-1]
            best: Optional[tuple[tuple[float, float, int], int, StopTiming]] = None
            for j in range(len(self.places)):
                if j in visited:
                    continue
                timing = self._step(current, j, run.timings[-1])
                if timing is None:
                    continue
                score = composite_score(
                    self.weights,
                    self.places[j].rating,
                    timing.travel_minutes,
                    timing.wait_minutes,
                    diversity=diversity_term(self.places[j].category, categories),
                    proximity_scale=self.proximity_scale,
                    wait_horizon=self.wait_horizon,
                )
                # higher score, then shorter travel, then lower index
                key = (score, -timing.travel_minutes, -j)
                if best is None or key > best[0]:
                    best = (key, j, timing)
            if best is None:
                break
            _, j, timing = best
            self._append(run, j, timing)
            visited.add(j)
            categories[self.places[j].category] += 1

        run.score = run.value - self.travel_penalty * run.travel_minutes
        return run

    def construct_all(self, k: int) -> list[GreedyRun]:
        runs = [self.construct(start) for start in self.start_candidates(k)]
        runs = [run for run in runs if run.order]
        logger.debug(
            "Greedy: %d run(s), stops per run %s",
            len(runs), [len(run.order) for run in runs],
        )
        return runs

    @staticmethod
    def best(runs: Sequence[GreedyRun]) -> Optional[GreedyRun]:
        """Highest score; first run wins ties."""
        winner: Optional[GreedyRun] = None
        for run in runs:
            if winner is None or run.score > winner.score + 1e-9:
                winner = run
        return winner

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _step(
        self,
        current: Optional[int],
        j: int,
        previous: Optional[StopTiming],
    ) -> Optional[StopTiming]:
        if current is None:
            travel = self.matrix.minutes_from_origin(j)
        else:
            travel = self.matrix.minutes(current, j)
        return advance(
            self.places[j], travel,
            previous.departure if previous else 0.0,
            previous.charged if previous else 0.0,
            self.start_week_minute, self.availability,
            budget=self.budget, charge_waits=self.charge_waits,
            fees=previous.fees if previous else 0.0,
            fee_budget=self.fee_budget,
        )

    def _append(self, run: GreedyRun, j: int, timing: StopTiming) -> None:
        run.order.append(j)
        run.timings.append(timing)
        run.travel_minutes += timing.travel_minutes
        run.value += place_value(self.places[j].rating)
