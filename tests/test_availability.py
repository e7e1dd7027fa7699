import pytest

from sightseeing.modules.planning.availability import AvailabilityModel
from sightseeing.modules.tool_usage.time_tool import WEEKDAYS

MONDAY, TUESDAY, FRIDAY = 0, 1, 4


@pytest.fixture
def model():
    return AvailabilityModel()


def test_boundaries_are_inclusive(model, make_place):
    place = make_place("museum", hours={"monday": {"open": "09:00", "close": "17:00"}})
    assert model.is_open(place, MONDAY, 9 * 60)
    assert model.is_open(place, MONDAY, 17 * 60)
    assert not model.is_open(place, MONDAY, 9 * 60 - 1)
    assert not model.is_open(place, MONDAY, 17 * 60 + 1)


def test_overnight_window(model, make_place):
    bar = make_place("bar", hours={"monday": {"open": "22:00", "close": "02:00"}})
    assert model.is_open(bar, MONDAY, 23 * 60 + 30)
    assert model.is_open(bar, MONDAY, 60)
    assert not model.is_open(bar, MONDAY, 12 * 60)


def test_missing_or_malformed_hours_fail_open(model, make_place):
    unknown = make_place("unknown")
    garbled = make_place("garbled", hours={"monday": {"open": "9am", "close": "5pm"}})
    assert model.is_open(unknown, MONDAY, 3 * 60)
    assert model.is_open(garbled, MONDAY, 3 * 60)


def test_open_equals_close_means_all_day(model, make_place):
    place = make_place("park", hours={"monday": {"open": "00:00", "close": "00:00"}})
    assert model.is_open(place, MONDAY, 0)
    assert model.is_open(place, MONDAY, 23 * 60 + 59)


def test_closed_shorthand(model, make_place):
    place = make_place("gallery", hours={"Mon": "closed"})
    assert not model.is_open(place, "monday", 12 * 60)
    assert model.is_open(place, TUESDAY, 12 * 60)


def test_closed_all_week_never_opens(model, make_place):
    place = make_place("shut", hours={day: {"closed": True} for day in WEEKDAYS})
    assert not model.is_open(place, MONDAY, 12 * 60)
    assert model.next_open(place, MONDAY, 12 * 60) is None
    assert model.wait_minutes(place, 12 * 60) is None


def test_next_open_later_same_day(model, make_place):
    place = make_place("museum", hours={"monday": {"open": "09:00", "close": "17:00"}})
    assert model.next_open(place, MONDAY, 7 * 60) == (MONDAY, 540.0)
    assert model.wait_minutes(place, 7 * 60) == pytest.approx(120.0)


def test_next_open_rolls_to_next_day(model, make_place):
    hours = {
        "monday": {"closed": True},
        "tuesday": {"open": "10:00", "close": "18:00"},
    }
    place = make_place("museum", hours=hours)
    assert model.next_open(place, MONDAY, 12 * 60) == (TUESDAY, 600.0)
    assert model.wait_minutes(place, 12 * 60) == pytest.approx(1440 - 720 + 600)


def test_next_open_respects_lookahead(make_place):
    hours = {day: {"closed": True} for day in WEEKDAYS}
    hours["friday"] = {"open": "09:00", "close": "17:00"}
    place = make_place("fri-only", hours=hours)

    assert AvailabilityModel(lookahead_days=3).next_open(place, MONDAY, 10 * 60) is None
    assert AvailabilityModel(lookahead_days=4).next_open(place, MONDAY, 10 * 60) == (FRIDAY, 540.0)


def test_open_now_needs_no_wait(model, make_place):
    place = make_place("museum", hours={"monday": {"open": "09:00", "close": "17:00"}})
    assert model.next_open(place, MONDAY, 10 * 60) == (MONDAY, 600)
    assert model.wait_minutes(place, 10 * 60) == 0
