import datetime

import pytest

from conftest import START
from weather_exporter.weather.cache_entry import EPOCH, CacheEntry, EntryPhase, RefreshPolicy
from weather_exporter.weather.models import Coordinates, Failed, Forecast, Fresh, Location, NotModified, Validator

OSLO = Location(name="Oslo", coordinates=Coordinates(59.91, 10.75))
POLICY = RefreshPolicy(poll_interval=300, min_interval=60, backoff_base=30, backoff_max=600)


def minutes(n):
    return datetime.timedelta(minutes=n)


def make_forecast(temperature=5.2, time=START):
    return Forecast(time=time, temperature=temperature, humidity=80.0, wind_speed=3.1)


@pytest.fixture
def warm_entry():
    entry = CacheEntry(name="Oslo", policy=POLICY)
    entry.resolved(OSLO)
    entry.apply(Fresh(make_forecast(), Validator(last_modified="lm-1"), START + minutes(30)), START)
    return entry


def test_new_entry_is_unresolved_and_eligible():
    entry = CacheEntry(name="Oslo", policy=POLICY)

    assert entry.phase is EntryPhase.UNRESOLVED
    assert entry.not_before == EPOCH
    assert entry.is_eligible(START)
    assert entry.location is None
    assert entry.validator is None
    assert entry.forecast is None


def test_lifecycle_unresolved_cold_warm():
    entry = CacheEntry(name="Oslo", policy=POLICY)

    entry.resolved(OSLO)
    assert entry.phase is EntryPhase.COLD
    assert entry.coordinates == Coordinates(59.91, 10.75)

    assert entry.apply(Fresh(make_forecast(), Validator(etag='"a"'), None), START)
    assert entry.phase is EntryPhase.WARM
    assert entry.forecast.temperature == 5.2
    assert entry.validator == Validator(etag='"a"')
    assert entry.last_fetch_succeeded


def test_resolving_twice_keeps_warm_state(warm_entry):
    warm_entry.resolved(Location(name="Elsewhere", coordinates=Coordinates(0, 0)))

    assert warm_entry.phase is EntryPhase.WARM
    assert warm_entry.coordinates == Coordinates(59.91, 10.75)


def test_upstream_expiry_sets_not_before(warm_entry):
    assert warm_entry.not_before == START + minutes(30)
    assert not warm_entry.is_eligible(START + minutes(29))
    assert warm_entry.is_eligible(START + minutes(30))


@pytest.mark.parametrize("expires", [None, START + minutes(1), START - minutes(5)])
def test_missing_or_short_expiry_falls_back_to_poll_interval(expires):
    entry = CacheEntry(name="Oslo", policy=POLICY)
    entry.resolved(OSLO)

    entry.apply(Fresh(make_forecast(), None, expires), START)

    assert entry.not_before == START + minutes(5)


def test_not_modified_keeps_forecast_and_updates_not_before(warm_entry):
    forecast = warm_entry.forecast
    validator = warm_entry.validator
    later = START + minutes(31)

    assert warm_entry.apply(NotModified(expires=later + minutes(40)), later)

    assert warm_entry.forecast is forecast
    assert warm_entry.forecast.time == START
    assert warm_entry.validator is validator
    assert warm_entry.not_before == later + minutes(40)


def test_not_modified_without_data_is_a_failure():
    entry = CacheEntry(name="Oslo", policy=POLICY)
    entry.resolved(OSLO)

    assert not entry.apply(NotModified(expires=None), START)
    assert entry.phase is EntryPhase.COLD
    assert entry.consecutive_failures == 1


def test_failures_keep_forecast_and_back_off_monotonically(warm_entry):
    forecast = warm_entry.forecast
    now = START + minutes(30)
    seen = []

    for _ in range(8):
        assert not warm_entry.apply(Failed("connection refused"), now)
        seen.append(warm_entry.not_before)

    assert warm_entry.forecast is forecast
    assert warm_entry.phase is EntryPhase.WARM
    assert warm_entry.consecutive_failures == 8
    assert not warm_entry.last_fetch_succeeded
    assert warm_entry.last_failure_reason == "connection refused"
    assert all(a <= b for a, b in zip(seen, seen[1:]))
    assert seen[2] > seen[0]
    assert seen[-1] == now + datetime.timedelta(seconds=POLICY.backoff_max)


def test_failure_never_moves_not_before_backwards(warm_entry):
    # Still inside the upstream expiry window: the first backoff step is shorter.
    warm_entry.apply(Failed("boom"), START)

    assert warm_entry.not_before == START + minutes(30)


def test_success_resets_failures_and_may_shorten_not_before(warm_entry):
    now = START + minutes(30)
    for _ in range(5):
        warm_entry.apply(Failed("boom"), now)
    backed_off = warm_entry.not_before

    warm_entry.apply(Fresh(make_forecast(temperature=7.0), None, now + minutes(2)), now)

    assert warm_entry.consecutive_failures == 0
    assert warm_entry.last_fetch_succeeded
    assert warm_entry.not_before == now + minutes(2)
    assert warm_entry.not_before < backed_off
    assert warm_entry.forecast.temperature == 7.0
    assert warm_entry.validator is None


def test_backoff_delay_is_exponential_and_capped():
    assert [POLICY.backoff_delay(n) for n in range(0, 7)] == [0, 30, 60, 120, 240, 480, 600]
    assert POLICY.backoff_delay(10_000) == 600


def test_status_reports_phase():
    entry = CacheEntry(name="Oslo", policy=POLICY)
    status = entry.get_status()

    assert status["phase"] == "unresolved"
    assert status["not_before"] is None
    assert status["latitude"] is None
