import itertools
import random

import pytest

from sightseeing.modules.optimization.exact import path_travel, solve_exact
from sightseeing.modules.optimization.heuristic import (
    diversity_term,
    normalise_weights,
    opening_term,
    proximity_term,
    rating_term,
)
from sightseeing.modules.optimization.local_search import LocalRefiner
from sightseeing.modules.optimization.route_builder import (
    RouteBuilder,
    RouteStrategy,
    select_strategy,
)
from sightseeing.modules.planning.route_planner import RoutePlanner
from sightseeing.modules.tool_usage.time_tool import WEEKDAYS
from sightseeing.modules.tool_usage.travel_time_provider import TravelTimeProvider
from sightseeing.schemas.place import SchedulingPreferences


def _random_grid(n, seed):
    rng = random.Random(seed)
    return [[0.0 if i == j else float(rng.randint(3, 60)) for j in range(n)] for i in range(n)]


def _brute_force(grid, nodes, start):
    rest = [n for n in nodes if n != start]
    return min(path_travel([start, *perm], grid) for perm in itertools.permutations(rest))


# ── Heuristic terms ───────────────────────────────────────────────────────────

def test_rating_term_is_clamped():
    assert rating_term(1.0) == 0.0
    assert rating_term(5.0) == 1.0
    assert rating_term(3.0) == pytest.approx(0.5)
    assert rating_term(7.0) == 1.0
    assert rating_term(0.0) == 0.0


def test_opening_and_proximity_terms():
    assert opening_term(None) == 0.0
    assert opening_term(0.0) == 1.0
    assert opening_term(60.0) == pytest.approx(0.25)
    assert opening_term(500.0) == 0.0
    assert proximity_term(0.0) == 1.0
    assert proximity_term(30.0) == pytest.approx(0.5)


def test_diversity_term_penalises_repeats():
    assert diversity_term("park", {}) == 1.0
    assert diversity_term("park", {"museum": 3}) == 1.0
    assert diversity_term("museum", {"museum": 1}) == pytest.approx(0.8)
    assert diversity_term("museum", {"museum": 7}) == 0.0


def test_weights_are_normalised():
    assert normalise_weights(1.0, 1.0, 2.0) == (0.25, 0.25, 0.5, 0.0)
    assert normalise_weights(1.0, 1.0, 1.0, 1.0) == (0.25, 0.25, 0.25, 0.25)
    with pytest.raises(ValueError):
        normalise_weights(0.0, 0.0, 0.0)


# ── Strategy selection ────────────────────────────────────────────────────────

@pytest.mark.parametrize("n, level, requested, expected", [
    (5, "optimal", None, RouteStrategy.EXACT),
    (15, "optimal", None, RouteStrategy.GREEDY),
    (5, "balanced", None, RouteStrategy.GREEDY),
    (5, "fast", "exact", RouteStrategy.EXACT),
    (11, "balanced", "exact", RouteStrategy.GREEDY),
])
def test_select_strategy(n, level, requested, expected):
    assert select_strategy(n, level, requested) is expected


# ── Exact DP ──────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("seed", [1, 2, 3])
def test_exact_matches_brute_force(seed):
    grid = _random_grid(6, seed)
    nodes = list(range(6))
    order, cost = solve_exact(grid, nodes, start=2)

    assert order[0] == 2
    assert sorted(order) == nodes
    assert cost == pytest.approx(path_travel(order, grid))
    assert cost == pytest.approx(_brute_force(grid, nodes, 2))


def test_exact_on_subset_and_single_node():
    grid = _random_grid(5, 9)
    order, cost = solve_exact(grid, [4, 1, 3], start=4)
    assert order[0] == 4 and sorted(order) == [1, 3, 4]
    assert cost == pytest.approx(_brute_force(grid, [4, 1, 3], 4))

    assert solve_exact(grid, [3], start=3) == ([3], 0.0)
    with pytest.raises(ValueError):
        solve_exact(grid, [1, 2], start=0)


# ── 2-opt ─────────────────────────────────────────────────────────────────────

def test_two_opt_uncrosses_line():
    xs = [0, 1, 2, 3, 4]
    grid = [[float(abs(a - b)) for b in xs] for a in xs]
    outcome = LocalRefiner().refine([0, 3, 1, 2, 4], grid)

    assert outcome.order == [0, 1, 2, 3, 4]
    assert outcome.travel_after == pytest.approx(4.0)
    assert outcome.improved


@pytest.mark.parametrize("seed", range(5))
def test_two_opt_never_worsens_and_keeps_stops(seed):
    grid = _random_grid(8, seed)
    order = list(range(8))
    random.Random(seed).shuffle(order)

    outcome = LocalRefiner().refine(order, grid)

    assert outcome.order[0] == order[0]
    assert sorted(outcome.order) == sorted(order)
    assert outcome.travel_after <= outcome.travel_before + 1e-9
    assert outcome.travel_after == pytest.approx(path_travel(outcome.order, grid))


def test_two_opt_respects_pass_ceiling():
    grid = _random_grid(8, 4)
    outcome = LocalRefiner(max_passes=0).refine(list(range(8)), grid)
    assert outcome.order == list(range(8))
    assert outcome.passes == 0


# ── Route builder ─────────────────────────────────────────────────────────────

@pytest.fixture
def six_places(make_place):
    return [make_place(f"p{i}", duration=30, rating=3.0 + (i % 3) * 0.5) for i in range(6)]


@pytest.mark.parametrize("seed", [11, 12, 13])
def test_exact_never_worse_than_greedy(six_places, matrix_from_grid, seed):
    matrix = matrix_from_grid(six_places, _random_grid(6, seed))
    builder = RouteBuilder()
    greedy = builder.build(
        six_places, matrix, SchedulingPreferences(time_budget_minutes=10_000, strategy="greedy")
    )
    exact = builder.build(
        six_places, matrix, SchedulingPreferences(time_budget_minutes=10_000, strategy="exact")
    )

    assert exact.strategy is RouteStrategy.EXACT
    assert sorted(exact.order) == sorted(greedy.order) == list(range(6))
    assert exact.order[0] == greedy.order[0]
    assert path_travel(exact.order, matrix.durations) <= path_travel(greedy.order, matrix.durations) + 1e-9


def test_greedy_respects_budget(six_places, matrix_from_grid):
    grid = [[0.0 if i == j else 10.0 for j in range(6)] for i in range(6)]
    matrix = matrix_from_grid(six_places, grid)
    plan = RouteBuilder().build(six_places, matrix, SchedulingPreferences(time_budget_minutes=100))

    # 30 + (10 + 30) + (10 + 30) = 110 > 100, so only two stops fit
    assert len(plan.order) == 2
    assert not plan.relaxed


def test_relaxed_pass_when_nothing_fits(make_place, matrix_from_grid):
    late = make_place("late", duration=60, hours={"monday": {"open": "12:00", "close": "18:00"}})
    matrix = matrix_from_grid([late], [[0.0]])
    prefs = SchedulingPreferences(start_time="09:00", start_weekday="monday", time_budget_minutes=120)

    plan = RouteBuilder().build([late], matrix, prefs)

    assert plan.order == (0,)
    assert plan.relaxed
    assert plan.budget == pytest.approx(180.0)
    assert not plan.charge_waits


def test_diversity_weight_prefers_new_category(make_place, matrix_from_grid):
    places = [
        make_place("start", duration=30, rating=5.0, category="museum"),
        make_place("museum", duration=30, rating=4.0, category="museum"),
        make_place("park", duration=30, rating=4.0, category="park"),
    ]
    grid = [[0.0 if i == j else 10.0 for j in range(3)] for i in range(3)]
    matrix = matrix_from_grid(places, grid)
    # room for the first stop plus exactly one more
    base = dict(optimization_level="fast", time_budget_minutes=70)

    plain = RouteBuilder().build(places, matrix, SchedulingPreferences(**base))
    varied = RouteBuilder().build(places, matrix, SchedulingPreferences(diversity_weight=1.0, **base))

    assert plain.order == (0, 1)
    assert varied.order == (0, 2)


# ── Schedule re-checks after reordering ───────────────────────────────────────
#
# Four stops on a line, x = a:0, c:1, b:2, d:3, ten minutes per unit. Ranking
# by rating alone makes greedy visit a, b, c, d (50 min of travel); a, c, b, d
# is shorter (30 min) but reaches b at 09:40, after its only window closes.

@pytest.fixture
def narrow_window_line(make_place, matrix_from_grid):
    only_monday_morning = {day: "closed" for day in WEEKDAYS}
    only_monday_morning["monday"] = {"open": "09:00", "close": "09:35"}
    places = [
        make_place("a", duration=10, rating=5.0),
        make_place("b", duration=10, rating=4.0, hours=only_monday_morning),
        make_place("c", duration=10, rating=3.0),
        make_place("d", duration=10, rating=2.0),
    ]
    xs = [0, 2, 1, 3]
    grid = [[10.0 * abs(xs[i] - xs[j]) for j in range(4)] for i in range(4)]
    return places, grid, matrix_from_grid(places, grid)


def _rating_only(**kwargs):
    return SchedulingPreferences(
        start_time="09:00", start_weekday="monday",
        priority_weight=1.0, time_weight=0.0, opening_weight=0.0, **kwargs
    )


def test_exact_order_rejected_when_it_misses_a_window(narrow_window_line):
    places, grid, matrix = narrow_window_line
    assert solve_exact(grid, [0, 1, 2, 3], start=0)[0] == [0, 2, 1, 3]

    plan = RouteBuilder().build(places, matrix, _rating_only(strategy="exact"))

    assert plan.strategy is RouteStrategy.EXACT
    assert plan.order == (0, 1, 2, 3)


def test_two_opt_reverted_when_it_misses_a_window(narrow_window_line):
    places, grid, matrix = narrow_window_line
    assert LocalRefiner().refine([0, 1, 2, 3], grid).order == [0, 2, 1, 3]

    class FixedMatrixProvider(TravelTimeProvider):
        async def build_matrix_async(self, places, minute_of_day=None, origin=None):
            return matrix

    planner = RoutePlanner(provider=FixedMatrixProvider())
    result = planner.optimize(places, _rating_only(optimization_level="balanced"))

    assert result.strategy == "greedy"
    assert result.place_ids == ["a", "b", "c", "d"]
    assert result.total_travel_minutes == pytest.approx(50.0)
