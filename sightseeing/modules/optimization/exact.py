"""
modules/optimization/exact.py
-------------------------------
Exact minimum-travel Hamiltonian path by bitmask dynamic programming
(Held-Karp, open path variant).

    dp[S][v] = min travel of a path that starts at `start`, visits exactly
               the node set S and ends at v
    dp[{start}][start] = 0
    dp[S ∪ {w}][w] = min_v dp[S][v] + D[v][w]

Time windows are ignored here; callers re-check the schedule afterwards.
Cost is O(2^k · k^2), so callers cap k (config.DP_MAX_PLACES).
"""

from __future__ import annotations

import math
from typing import Sequence


def path_travel(order: Sequence[int], durations: Sequence[Sequence[float]]) -> float:
    return sum(durations[a][b] for a, b in zip(order, order[1:]))


def solve_exact(
    durations: Sequence[Sequence[float]],
    nodes: Sequence[int],
    start: int,
) -> tuple[list[int], float]:
    """
    Args:
        durations : full travel matrix [minutes], indexed by node.
        nodes     : node subset to visit (must contain `start`).
        start     : fixed first node.

    Returns:
        (order, travel_minutes) with order[0] == start.
    """
    if start not in nodes:
        raise ValueError("start node must be part of the node set")
    local = [start] + [n for n in dict.fromkeys(nodes) if n != start]
    k = len(local)
    if k == 1:
        return [start], 0.0

    full = 1 << k
    dp = [[math.inf] * k for _ in range(full)]
    parent = [[-1] * k for _ in range(full)]
    dp[1][0] = 0.0

    for mask in range(1, full, 2):          # every mask containing the start bit
        row = dp[mask]
        for u in range(k):
            cost = row[u]
            if cost == math.inf:
                continue
            src = local[u]
            for v in range(1, k):
                bit = 1 << v
                if mask & bit:
                    continue
                nxt = mask | bit
                candidate = cost + durations[src][local[v]]
                if candidate < dp[nxt][v]:
                    dp[nxt][v] = candidate
                    parent[nxt][v] = u

    last_row = dp[full - 1]
    end = min(range(1, k), key=lambda v: (last_row[v], v))

    order: list[int] = []
    mask, v = full - 1, end
    while v != -1:
        order.append(local[v])
        prev = parent[mask][v]
        mask ^= 1 << v
        v = prev
    order.reverse()
    return order, last_row[end]
