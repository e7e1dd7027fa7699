import asyncio
from unittest.mock import patch

import pytest
import requests

from conftest import LOUVRE, NOTRE_DAME, ORSAY, PANTHEON
from sightseeing.exceptions import InvalidCoordinates, MatrixBuildFailure, ProviderUnavailable
from sightseeing.modules.tool_usage.maps_client import GoogleDistanceMatrixClient
from sightseeing.modules.tool_usage.travel_time_provider import TravelTimeCache, TravelTimeProvider
from sightseeing.schemas.travel import DistanceRecord

OK_PAYLOAD = {
    "status": "OK",
    "rows": [{"elements": [{
        "status": "OK",
        "distance": {"value": 12500},
        "duration": {"value": 1800},
    }]}],
}


def _record(minutes=10.0):
    return DistanceRecord(LOUVRE, ORSAY, 1.0, minutes)


# ── Cache ─────────────────────────────────────────────────────────────────────

def test_cache_evicts_oldest_first():
    cache = TravelTimeCache(max_entries=2)
    cache.put("a", _record())
    cache.put("b", _record())
    assert cache.get("a") is not None      # a hit must not refresh "a"
    cache.put("c", _record())

    assert "a" not in cache
    assert "b" in cache and "c" in cache
    assert len(cache) == 2


def test_cache_stats_count_hits_and_misses():
    cache = TravelTimeCache(max_entries=10)
    cache.put("k", _record())
    cache.get("k")
    cache.get("k")
    cache.get("missing")
    assert cache.stats() == {"size": 1, "max_entries": 10, "hits": 2, "misses": 1}


def test_cache_key_rounds_coordinates():
    cache = TravelTimeCache(precision=3)
    assert cache.key((48.86061, 2.33761), ORSAY) == cache.key((48.86058, 2.33759), ORSAY)
    assert cache.key(LOUVRE, ORSAY, "peak") != cache.key(LOUVRE, ORSAY, "normal")


# ── Single lookups ────────────────────────────────────────────────────────────

def test_lookup_prefers_maps_and_caches(fake_client_cls):
    client = fake_client_cls(answers={(LOUVRE, ORSAY): (1.2, 9.0)})
    provider = TravelTimeProvider(client=client, rate_limit_delay_s=0.0)

    first = provider.lookup(LOUVRE, ORSAY)
    second = provider.lookup(LOUVRE, ORSAY)

    assert first.source == "maps" and not first.is_fallback
    assert first.duration_minutes == 9.0
    assert second.cached
    assert len(client.calls) == 1
    assert provider.cache_stats()["hits"] == 1


def test_lookup_falls_back_on_provider_failure(offline_provider):
    record = offline_provider.lookup(LOUVRE, NOTRE_DAME)
    assert record.is_fallback
    assert record.source == "geo"
    assert record.distance_km >= 0.1


def test_lookup_places_uses_place_coordinates(offline_provider, make_place):
    a, b = make_place("a", LOUVRE), make_place("b", PANTHEON)
    record = offline_provider.lookup_places(a, b)
    assert record.origin == LOUVRE
    assert record.destination == PANTHEON


def test_lookup_rejects_invalid_coordinates(offline_provider):
    with pytest.raises(InvalidCoordinates):
        offline_provider.lookup((95.0, 0.0), LOUVRE)


def test_missing_api_key_never_calls_http():
    provider = TravelTimeProvider(client=GoogleDistanceMatrixClient(api_key=""), rate_limit_delay_s=0.0)
    with patch("sightseeing.modules.tool_usage.maps_client.requests.get") as mock_get:
        record = provider.lookup(LOUVRE, ORSAY)
        asyncio.run(provider.lookup_async(LOUVRE, NOTRE_DAME))
    mock_get.assert_not_called()
    assert record.is_fallback


def test_slow_lookup_times_out_to_fallback(fake_client_cls):
    client = fake_client_cls(answers={(LOUVRE, ORSAY): (1.2, 9.0)}, delay_s=0.5)
    provider = TravelTimeProvider(client=client, lookup_timeout_s=0.05, rate_limit_delay_s=0.0)
    record = asyncio.run(provider.lookup_async(LOUVRE, ORSAY))
    assert record.is_fallback


# ── Matrix construction ───────────────────────────────────────────────────────

def test_matrix_all_fallback_when_every_lookup_fails(offline_provider, make_place):
    places = [make_place("a", LOUVRE), make_place("b", NOTRE_DAME), make_place("c", ORSAY)]
    matrix = offline_provider.build_matrix(places)

    assert matrix.size == 3
    assert matrix.fallback_count == 6
    for i in range(3):
        assert matrix.minutes(i, i) == 0.0
        for j in range(3):
            if i != j:
                assert matrix.record(i, j).is_fallback
                assert matrix.minutes(i, j) >= 1.0


def test_matrix_concurrency_is_bounded(fake_client_cls, make_place):
    client = fake_client_cls(delay_s=0.02)
    provider = TravelTimeProvider(client=client, batch_size=2, rate_limit_delay_s=0.0)
    places = [
        make_place("a", LOUVRE), make_place("b", NOTRE_DAME),
        make_place("c", ORSAY), make_place("d", PANTHEON),
    ]
    provider.build_matrix(places)

    assert len(client.calls) == 12
    assert client.max_in_flight <= 2


def test_matrix_fails_when_fallback_disabled(fake_client_cls, make_place):
    provider = TravelTimeProvider(client=fake_client_cls(), allow_fallback=False, rate_limit_delay_s=0.0)
    places = [make_place("a", LOUVRE), make_place("b", ORSAY)]

    with pytest.raises(MatrixBuildFailure) as excinfo:
        provider.build_matrix(places)
    assert sorted(excinfo.value.failed_pairs) == [("a", "b"), ("b", "a")]
    assert isinstance(excinfo.value.cause, ProviderUnavailable)


# ── Maps client ───────────────────────────────────────────────────────────────

@patch("sightseeing.modules.tool_usage.maps_client.requests.get")
def test_maps_client_parses_distance_matrix(mock_get):
    mock_get.return_value.json.return_value = OK_PAYLOAD
    client = GoogleDistanceMatrixClient(api_key="test-key")

    km, minutes = client.fetch(LOUVRE, ORSAY)

    assert km == pytest.approx(12.5)
    assert minutes == pytest.approx(30.0)
    assert mock_get.call_args.kwargs["params"]["key"] == "test-key"


@patch("sightseeing.modules.tool_usage.maps_client.requests.get")
def test_maps_client_quota(mock_get):
    mock_get.return_value.json.return_value = {"status": "OVER_QUERY_LIMIT"}
    with pytest.raises(ProviderUnavailable, match="quota"):
        GoogleDistanceMatrixClient(api_key="k").fetch(LOUVRE, ORSAY)


@patch("sightseeing.modules.tool_usage.maps_client.requests.get")
def test_maps_client_timeout(mock_get):
    mock_get.side_effect = requests.Timeout("read timed out")
    with pytest.raises(ProviderUnavailable) as excinfo:
        GoogleDistanceMatrixClient(api_key="k").fetch(LOUVRE, ORSAY)
    assert excinfo.value.reason == "timeout"


@patch("sightseeing.modules.tool_usage.maps_client.requests.get")
def test_maps_client_element_not_found(mock_get):
    mock_get.return_value.json.return_value = {
        "status": "OK",
        "rows": [{"elements": [{"status": "ZERO_RESULTS"}]}],
    }
    with pytest.raises(ProviderUnavailable, match="bad_response"):
        GoogleDistanceMatrixClient(api_key="k").fetch(LOUVRE, ORSAY)


@patch("sightseeing.modules.tool_usage.maps_client.requests.get")
def test_maps_client_null_element(mock_get):
    mock_get.return_value.json.return_value = {"status": "OK", "rows": [{"elements": [None]}]}
    with pytest.raises(ProviderUnavailable) as excinfo:
        GoogleDistanceMatrixClient(api_key="k").fetch(LOUVRE, ORSAY)
    assert excinfo.value.reason == "bad_response"


# ── Unexpected client errors ──────────────────────────────────────────────────

class BrokenClient:
    available = True

    def fetch(self, origin, destination):
        raise RuntimeError("unexpected payload shape")


def test_unexpected_client_error_falls_back():
    provider = TravelTimeProvider(client=BrokenClient(), rate_limit_delay_s=0.0)

    record = provider.lookup(LOUVRE, ORSAY)
    async_record = asyncio.run(provider.lookup_async(NOTRE_DAME, PANTHEON))

    assert record.is_fallback and record.source == "geo"
    assert async_record.is_fallback


def test_unexpected_client_error_fails_matrix_without_fallback(make_place):
    provider = TravelTimeProvider(client=BrokenClient(), allow_fallback=False, rate_limit_delay_s=0.0)
    with pytest.raises(MatrixBuildFailure) as excinfo:
        provider.build_matrix([make_place("a", LOUVRE), make_place("b", ORSAY)])
    assert excinfo.value.cause.reason == "bad_response"
    assert isinstance(excinfo.value.cause.__cause__, RuntimeError)


# ── Start location ────────────────────────────────────────────────────────────

def test_matrix_includes_legs_from_start_location(fake_client_cls, make_place):
    client = fake_client_cls(answers={(PANTHEON, LOUVRE): (2.0, 8.0)})
    provider = TravelTimeProvider(client=client, rate_limit_delay_s=0.0)
    places = [make_place("a", LOUVRE), make_place("b", ORSAY)]

    matrix = provider.build_matrix(places, origin=PANTHEON)

    assert matrix.has_origin
    assert len(client.calls) == 4
    assert matrix.lookups == 4
    assert matrix.minutes_from_origin(0) == 8.0
    assert not matrix.origin_record(0).is_fallback
    assert matrix.origin_record(1).is_fallback
    assert matrix.fallback_count == 3


def test_matrix_without_start_location_has_zero_first_leg(offline_provider, make_place):
    matrix = offline_provider.build_matrix([make_place("a", LOUVRE), make_place("b", ORSAY)])
    assert not matrix.has_origin
    assert matrix.minutes_from_origin(1) == 0.0
    assert matrix.origin_record(1) is None


def test_start_location_failures_are_labelled(fake_client_cls, make_place):
    provider = TravelTimeProvider(client=fake_client_cls(), allow_fallback=False, rate_limit_delay_s=0.0)
    with pytest.raises(MatrixBuildFailure) as excinfo:
        provider.build_matrix([make_place("a", LOUVRE)], origin=PANTHEON)
    assert excinfo.value.failed_pairs == [("start", "a")]


def test_invalid_start_location_rejected_before_io(fake_client_cls, make_place):
    client = fake_client_cls()
    provider = TravelTimeProvider(client=client, rate_limit_delay_s=0.0)
    with pytest.raises(InvalidCoordinates):
        provider.build_matrix([make_place("a", LOUVRE)], origin=(0.0, 200.0))
    assert client.calls == []


# ── Worker pool ───────────────────────────────────────────────────────────────

def test_abandoned_pool_is_replaced(fake_client_cls):
    client = fake_client_cls(answers={(LOUVRE, ORSAY): (1.2, 9.0)})
    provider = TravelTimeProvider(client=client, rate_limit_delay_s=0.0)

    asyncio.run(provider.lookup_async(NOTRE_DAME, PANTHEON))
    provider.abandon_pending()
    provider.abandon_pending()
    record = asyncio.run(provider.lookup_async(LOUVRE, ORSAY))

    assert record.source == "maps"
    assert record.duration_minutes == 9.0
