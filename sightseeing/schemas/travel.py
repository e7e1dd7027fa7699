"""
schemas/travel.py
-----------------
Dataclass definitions for pairwise travel data.

Units:
  - distance_km      : kilometres
  - duration_minutes : minutes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

Coordinate = tuple[float, float]   # (latitude, longitude)

START_ID = "start"                 # pseudo place id for the start location


@dataclass(frozen=True)
class DistanceRecord:
    """
    One directed origin → destination travel estimate.

    source:
      "maps" - answered by the external maps service
      "geo"  - geometric estimate (is_fallback is always True)
    """
    origin: Coordinate
    destination: Coordinate
    distance_km: float
    duration_minutes: float
    is_fallback: bool = False
    source: str = "maps"
    cached: bool = False     # served from the travel-time cache


@dataclass
class TravelMatrix:
    """
    n x n directed travel matrix over a list of places.

    records[i][j] is the DistanceRecord for place i → place j; the diagonal
    holds None (zero by definition, never queried).

    origin_records[j], when present, is the leg from the traveller's start
    location to place j. Without a start location the trip begins at the
    first stop and the first leg is zero.
    """
    place_ids: list[str] = field(default_factory=list)
    records: list[list[Optional[DistanceRecord]]] = field(default_factory=list)
    origin_records: list[DistanceRecord] = field(default_factory=list)

    # Derived at build time
    durations: list[list[float]] = field(init=False, default_factory=list)
    distances: list[list[float]] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        n = len(self.place_ids)
        if len(self.records) != n or any(len(row) != n for row in self.records):
            raise ValueError("records must be an n x n grid matching place_ids")
        if self.origin_records and len(self.origin_records) != n:
            raise ValueError("origin_records needs one record per place")
        self.durations = [
            [0.0 if i == j else self._required(i, j).duration_minutes for j in range(n)]
            for i in range(n)
        ]
        self.distances = [
            [0.0 if i == j else self._required(i, j).distance_km for j in range(n)]
            for i in range(n)
        ]

    @property
    def size(self) -> int:
        return len(self.place_ids)

    @property
    def has_origin(self) -> bool:
        return bool(self.origin_records)

    def minutes(self, i: int, j: int) -> float:
        return self.durations[i][j]

    def km(self, i: int, j: int) -> float:
        return self.distances[i][j]

    def record(self, i: int, j: int) -> Optional[DistanceRecord]:
        return self.records[i][j]

    def minutes_from_origin(self, j: int) -> float:
        return self.origin_records[j].duration_minutes if self.origin_records else 0.0

    def km_from_origin(self, j: int) -> float:
        return self.origin_records[j].distance_km if self.origin_records else 0.0

    def origin_record(self, j: int) -> Optional[DistanceRecord]:
        return self.origin_records[j] if self.origin_records else None

    @property
    def lookups(self) -> int:
        return self.size * (self.size - 1) + len(self.origin_records)

    @property
    def fallback_count(self) -> int:
        pairwise = sum(
            1
            for i, row in enumerate(self.records)
            for j, rec in enumerate(row)
            if i != j and rec is not None and rec.is_fallback
        )
        return pairwise + sum(1 for rec in self.origin_records if rec.is_fallback)

    def _required(self, i: int, j: int) -> DistanceRecord:
        rec = self.records[i][j]
        if rec is None:
            raise ValueError(f"missing travel record {self.place_ids[i]} → {self.place_ids[j]}")
        return rec
