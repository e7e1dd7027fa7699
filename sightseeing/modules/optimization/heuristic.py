"""
modules/optimization/heuristic.py
-----------------------------------
Composite desirability score used by greedy construction to pick the next stop.

    score(i → j) = w_p · rating_term(j) + w_t · proximity_term(D_ij)
                 + w_o · opening_term(wait_j) + w_d · diversity_term(cat_j)

Terms (each ∈ [0, 1]):
    rating_term    = clamp((rating − 1) / 4, 0, 1)       1★ → 0, 5★ → 1
    proximity_term = s / (s + D_ij)                       s = PROXIMITY_SCALE_MINUTES
    opening_term   = 1                                    open on arrival
                     0.5 · max(0, 1 − wait / H)           must wait (H = WAIT_HORIZON_MINUTES)
                     0                                    never opens within look-ahead
    diversity_term = 1                                    category not yet on the route
                     max(0, 1 − p · count)                p = DIVERSITY_REPEAT_PENALTY

Weights (w_p, w_t, w_o, w_d) are normalised to sum to 1 before use; w_d
defaults to 0.

Run-level objective (compares complete candidate routes):
    value(run) = Σ_j (1 + rating_term(j)) − λ · Σ travel     λ = TRAVEL_PENALTY_PER_MINUTE
Visiting one more place always outweighs any realistic extra travel, so
coverage dominates and travel time breaks ties.
"""

from __future__ import annotations

from typing import Mapping, Optional

from sightseeing import config

Weights = tuple[float, float, float, float]


def normalise_weights(
    priority: float,
    time: float,
    opening: float,
    diversity: float = 0.0,
) -> Weights:
    total = priority + time + opening + diversity
    if total <= 0.0:
        raise ValueError("at least one scoring weight must be positive")
    return priority / total, time / total, opening / total, diversity / total


def rating_term(rating: float) -> float:
    return min(1.0, max(0.0, (rating - 1.0) / 4.0))


def proximity_term(
    travel_minutes: float,
    scale: float = config.PROXIMITY_SCALE_MINUTES,
) -> float:
    if travel_minutes <= 0.0:
        return 1.0
    return scale / (scale + travel_minutes)


def opening_term(
    wait_minutes: Optional[float],
    horizon: float = config.WAIT_HORIZON_MINUTES,
) -> float:
    if wait_minutes is None:
        return 0.0
    if wait_minutes <= 0.0:
        return 1.0
    return 0.5 * max(0.0, 1.0 - wait_minutes / horizon)


def diversity_term(
    category: str,
    visited: Mapping[str, int],
    penalty: float = config.DIVERSITY_REPEAT_PENALTY,
) -> float:
    """`visited` counts categories already on the route."""
    seen = visited.get(category, 0)
    if seen == 0:
        return 1.0
    return max(0.0, 1.0 - penalty * seen)


def composite_score(
    weights: Weights,
    rating: float,
    travel_minutes: float,
    wait_minutes: Optional[float],
    *,
    diversity: float = 1.0,
    proximity_scale: float = config.PROXIMITY_SCALE_MINUTES,
    wait_horizon: float = config.WAIT_HORIZON_MINUTES,
) -> float:
    w_p, w_t, w_o, w_d = weights
    return (
        w_p * rating_term(rating)
        + w_t * proximity_term(travel_minutes, proximity_scale)
        + w_o * opening_term(wait_minutes, wait_horizon)
        + w_d * diversity
    )


def place_value(rating: float) -> float:
    """Contribution of one visited place to the run objective."""
    return 1.0 + rating_term(rating)
