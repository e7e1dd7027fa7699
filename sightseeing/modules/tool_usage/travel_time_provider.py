"""
modules/tool_usage/travel_time_provider.py
--------------------------------------------
Pairwise travel-time lookups with caching, fallback and concurrent matrix
construction.

Lookup order for one origin → destination pair:
  1. TravelTimeCache (key: rounded coordinates + traffic band)
  2. external maps client
  3. GeoDistanceEstimator, flagged is_fallback=True
     (skipped when allow_fallback=False; the failure then propagates)

build_matrix_async() fans out the n·(n-1) directed lookups, plus n more from
the start location when one is given:
  - each blocking lookup runs in the provider's own worker pool
  - at most `batch_size` lookups are in flight (asyncio.Semaphore)
  - each lookup is bounded by `lookup_timeout_s` (asyncio.wait_for)
  - a worker slot is held for `rate_limit_delay_s` after an external call
Any client error, expected or not, degrades to the geometric estimate unless
fallback is disabled.
Any pair that cannot be resolved at all fails the whole build with
MatrixBuildFailure; the optimizer never sees a partial matrix.

abandon_pending() shuts the worker pool down without joining it; calls
already running finish on their own threads and their results are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Optional, Sequence

from sightseeing import config
from sightseeing.exceptions import InvalidCoordinates, MatrixBuildFailure, ProviderUnavailable
from sightseeing.modules.tool_usage.distance_tool import (
    GeoDistanceEstimator,
    traffic_band,
    validate_coordinates,
)
from sightseeing.modules.tool_usage.maps_client import GoogleDistanceMatrixClient, MapsClient
from sightseeing.schemas.place import Place
from sightseeing.schemas.travel import START_ID, Coordinate, DistanceRecord, TravelMatrix

logger = logging.getLogger(__name__)

_MIN_TRAVEL_MINUTES = 1.0


class TravelTimeCache:
    """
    Bounded, thread-safe map of pair keys → DistanceRecord.

    Eviction is first-in-first-out: once `max_entries` is reached the oldest
    insertion is dropped. Hits do not refresh an entry's position.
    """

    def __init__(
        self,
        max_entries: int = config.TRAVEL_CACHE_MAX_ENTRIES,
        precision: int = config.TRAVEL_CACHE_PRECISION,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.precision = precision
        self.hits = 0
        self.misses = 0
        self._entries: OrderedDict[str, DistanceRecord] = OrderedDict()
        self._lock = threading.Lock()

    def key(self, origin: Coordinate, destination: Coordinate, band: str = "normal") -> str:
        p = self.precision
        return (
            f"{origin[0]:.{p}f},{origin[1]:.{p}f}"
            f"|{destination[0]:.{p}f},{destination[1]:.{p}f}"
            f"|{band}"
        )

    def get(self, key: str) -> Optional[DistanceRecord]:
        with self._lock:
            record = self._entries.get(key)
            if record is None:
                self.misses += 1
            else:
                self.hits += 1
            return record

    def put(self, key: str, record: DistanceRecord) -> None:
        with self._lock:
            if key in self._entries:
                self._entries[key] = record
                return
            self._entries[key] = record
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache full, evicted %s", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self.hits,
                "misses": self.misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


class TravelTimeProvider:
    """
    Resolves travel records for coordinate pairs and whole place lists.

    Holds its own cache; share one provider across requests to reuse it.
    """

    def __init__(
        self,
        client: Optional[MapsClient] = None,
        estimator: Optional[GeoDistanceEstimator] = None,
        cache: Optional[TravelTimeCache] = None,
        *,
        batch_size: int = config.MATRIX_BATCH_SIZE,
        lookup_timeout_s: float = config.MAPS_REQUEST_TIMEOUT_S,
        rate_limit_delay_s: float = config.MAPS_RATE_LIMIT_DELAY_S,
        allow_fallback: bool = config.USE_FALLBACK_DISTANCES,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.client = client if client is not None else GoogleDistanceMatrixClient()
        self.estimator = estimator if estimator is not None else GeoDistanceEstimator()
        self.cache = cache if cache is not None else TravelTimeCache()
        self.batch_size = batch_size
        self.lookup_timeout_s = lookup_timeout_s
        self.rate_limit_delay_s = rate_limit_delay_s
        self.allow_fallback = allow_fallback
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    # ── Single lookups ───────────────────────────────────────────────────────

    def lookup(
        self,
        origin: Coordinate,
        destination: Coordinate,
        minute_of_day: Optional[float] = None,
    ) -> DistanceRecord:
        """Blocking lookup: cache → maps client → geometric fallback."""
        validate_coordinates(*origin)
        validate_coordinates(*destination)

        key = self.cache.key(origin, destination, traffic_band(minute_of_day))
        cached = self.cache.get(key)
        if cached is not None:
            return replace(cached, cached=True)

        try:
            record = self._fetch_external(origin, destination)
        except ProviderUnavailable as exc:
            record = self._fallback(origin, destination, minute_of_day, exc)
        except Exception as exc:
            record = self._fallback(origin, destination, minute_of_day, _unexpected(exc), cause=exc)

        self.cache.put(key, record)
        return record

    def lookup_places(
        self,
        origin: Place,
        destination: Place,
        minute_of_day: Optional[float] = None,
    ) -> DistanceRecord:
        return self.lookup(origin.coordinates, destination.coordinates, minute_of_day)

    async def lookup_async(
        self,
        origin: Coordinate,
        destination: Coordinate,
        minute_of_day: Optional[float] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> DistanceRecord:
        validate_coordinates(*origin)
        validate_coordinates(*destination)

        key = self.cache.key(origin, destination, traffic_band(minute_of_day))
        cached = self.cache.get(key)
        if cached is not None:
            return replace(cached, cached=True)

        if semaphore is None:
            semaphore = asyncio.Semaphore(1)

        async with semaphore:
            if not self.client.available:
                record = self._fallback(
                    origin, destination, minute_of_day,
                    ProviderUnavailable("missing_credentials"),
                )
            else:
                loop = asyncio.get_running_loop()
                try:
                    record = await asyncio.wait_for(
                        loop.run_in_executor(
                            self._worker_pool(), self._fetch_external, origin, destination
                        ),
                        timeout=self.lookup_timeout_s,
                    )
                except asyncio.TimeoutError as exc:
                    record = self._fallback(
                        origin, destination, minute_of_day,
                        ProviderUnavailable("timeout", f"no answer within {self.lookup_timeout_s:g}s"),
                        cause=exc,
                    )
                except ProviderUnavailable as exc:
                    record = self._fallback(origin, destination, minute_of_day, exc)
                except Exception as exc:
                    record = self._fallback(
                        origin, destination, minute_of_day, _unexpected(exc), cause=exc
                    )
                if self.rate_limit_delay_s > 0:
                    await asyncio.sleep(self.rate_limit_delay_s)

        self.cache.put(key, record)
        return record

    # ── Matrix construction ──────────────────────────────────────────────────

    async def build_matrix_async(
        self,
        places: Sequence[Place],
        minute_of_day: Optional[float] = None,
        origin: Optional[Coordinate] = None,
    ) -> TravelMatrix:
        """
        Build the full directed matrix for `places`, plus the legs from
        `origin` to every place when a start location is given.

        Raises:
            InvalidCoordinates: a place or the origin is out of range (before any I/O).
            MatrixBuildFailure: one or more pairs could not be resolved.
        """
        for place in places:
            validate_coordinates(place.latitude, place.longitude)
        if origin is not None:
            validate_coordinates(*origin)

        n = len(places)
        pairs = [(i, j) for i in range(n) for j in range(n) if i != j]
        labels = [(places[i].id, places[j].id) for i, j in pairs]
        legs = [(places[i].coordinates, places[j].coordinates) for i, j in pairs]
        if origin is not None:
            labels += [(START_ID, place.id) for place in places]
            legs += [(origin, place.coordinates) for place in places]

        semaphore = asyncio.Semaphore(self.batch_size)
        results = await asyncio.gather(
            *(self.lookup_async(a, b, minute_of_day, semaphore) for a, b in legs),
            return_exceptions=True,
        )

        failed: list[tuple[str, str]] = []
        first_error: Optional[BaseException] = None
        resolved: list[Optional[DistanceRecord]] = []
        for label, outcome in zip(labels, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception) or isinstance(outcome, InvalidCoordinates):
                    raise outcome
                failed.append(label)
                first_error = first_error or outcome
                resolved.append(None)
                continue
            resolved.append(outcome)

        if failed:
            logger.error("Matrix build failed for %d of %d lookups", len(failed), len(labels))
            raise MatrixBuildFailure(failed, cause=first_error) from first_error

        records: list[list[Optional[DistanceRecord]]] = [[None] * n for _ in range(n)]
        for (i, j), record in zip(pairs, resolved):
            records[i][j] = record
        origin_records = [record for record in resolved[len(pairs):] if record is not None]

        matrix = TravelMatrix(
            place_ids=[p.id for p in places], records=records, origin_records=origin_records
        )
        logger.info(
            "Matrix built: %d places, %d lookups, %d fallback%s",
            n, matrix.lookups, matrix.fallback_count,
            " (with start location)" if matrix.has_origin else "",
        )
        return matrix

    def build_matrix(
        self,
        places: Sequence[Place],
        minute_of_day: Optional[float] = None,
        origin: Optional[Coordinate] = None,
    ) -> TravelMatrix:
        """Blocking wrapper; do not call from inside a running event loop."""
        return asyncio.run(self.build_matrix_async(places, minute_of_day, origin))

    def cache_stats(self) -> dict[str, int]:
        return self.cache.stats()

    def abandon_pending(self) -> None:
        """
        Shut the worker pool down without waiting. Queued lookups are
        cancelled; running ones finish in the background and are discarded.
        The next lookup starts a fresh pool.
        """
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            logger.warning("Abandoning in-flight maps lookups")
            pool.shutdown(wait=False, cancel_futures=True)

    # ── Internals ────────────────────────────────────────────────────────────

    def _worker_pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.batch_size, thread_name_prefix="maps-lookup"
                )
            return self._pool

    def _fetch_external(self, origin: Coordinate, destination: Coordinate) -> DistanceRecord:
        km, minutes = self.client.fetch(origin, destination)
        return DistanceRecord(
            origin=origin,
            destination=destination,
            distance_km=max(km, self.estimator.min_distance_km),
            duration_minutes=max(minutes, _MIN_TRAVEL_MINUTES),
            is_fallback=False,
            source="maps",
        )

    def _fallback(
        self,
        origin: Coordinate,
        destination: Coordinate,
        minute_of_day: Optional[float],
        error: ProviderUnavailable,
        cause: Optional[BaseException] = None,
    ) -> DistanceRecord:
        if not self.allow_fallback:
            if cause is not None:
                raise error from cause
            raise error
        if error.reason != "missing_credentials":
            logger.warning("Maps lookup failed (%s); using geometric estimate", error)
        return self.estimator.estimate(origin, destination, minute_of_day)


def _unexpected(exc: Exception) -> ProviderUnavailable:
    return ProviderUnavailable("bad_response", f"{type(exc).__name__}: {exc}")
