import threading
import time

import pytest

from sightseeing.exceptions import ProviderUnavailable
from sightseeing.modules.tool_usage.travel_time_provider import TravelTimeProvider
from sightseeing.schemas.place import Place
from sightseeing.schemas.travel import DistanceRecord, TravelMatrix

# Central Paris, a few hundred metres apart
LOUVRE = (48.8606, 2.3376)
NOTRE_DAME = (48.8530, 2.3499)
ORSAY = (48.8600, 2.3266)
PANTHEON = (48.8462, 2.3464)


class FakeMapsClient:
    """
    Stand-in for GoogleDistanceMatrixClient.

    Answers pairs found in `answers`, raises ProviderUnavailable otherwise.
    Records every call and the peak number of concurrent calls.
    """

    available = True

    def __init__(self, answers=None, fail_with="network", delay_s=0.0):
        self.answers = dict(answers or {})
        self.fail_with = fail_with
        self.delay_s = delay_s
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch(self, origin, destination):
        with self._lock:
            self.calls.append((origin, destination))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_s:
                time.sleep(self.delay_s)
            if (origin, destination) in self.answers:
                return self.answers[(origin, destination)]
            raise ProviderUnavailable(self.fail_with)
        finally:
            with self._lock:
                self.in_flight -= 1


def _make_place(pid, coords=LOUVRE, duration=60, rating=4.0, hours=None, category="museum", fee=0.0):
    return Place(
        id=pid,
        name=f"Place {pid}",
        latitude=coords[0],
        longitude=coords[1],
        category=category,
        visit_duration_minutes=duration,
        rating=rating,
        entry_fee=fee,
        opening_hours=hours or {},
    )


def _matrix_from_grid(places, grid):
    n = len(places)
    records = [
        [
            None if i == j else DistanceRecord(
                origin=places[i].coordinates,
                destination=places[j].coordinates,
                distance_km=grid[i][j] / 2.0,
                duration_minutes=float(grid[i][j]),
            )
            for j in range(n)
        ]
        for i in range(n)
    ]
    return TravelMatrix(place_ids=[p.id for p in places], records=records)


@pytest.fixture
def make_place():
    return _make_place


@pytest.fixture
def matrix_from_grid():
    return _matrix_from_grid


@pytest.fixture
def fake_client_cls():
    return FakeMapsClient


@pytest.fixture
def offline_provider():
    """Provider whose maps client always fails, so every record is a geometric estimate."""
    return TravelTimeProvider(client=FakeMapsClient(), rate_limit_delay_s=0.0)
