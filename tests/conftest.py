import asyncio
import datetime
import json
import os
from email.utils import format_datetime

import httpx
import pytest
from prometheus_client import CollectorRegistry

from weather_exporter.monitoring.metrics import MetricPublisher
from weather_exporter.weather.cache_entry import CacheEntry, RefreshPolicy
from weather_exporter.weather.coordinator import LocationWorker
from weather_exporter.weather.fetcher import ConditionalFetcher
from weather_exporter.weather.resolver import LocationResolver
from weather_exporter.weather.yr.http_client import build_http_client

FIXTURE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fixtures")
USER_AGENT = "weather-exporter-tests/1.0 github.com/weather-exporter/tests"
START = datetime.datetime(2024, 5, 1, 12, 10, tzinfo=datetime.timezone.utc)


def load_fixture(name: str):
    with open(os.path.join(FIXTURE_DIR, name)) as f:
        return json.load(f)


def http_date(dt: datetime.datetime) -> str:
    return format_datetime(dt, usegmt=True)


class FakeClock:
    def __init__(self, now: datetime.datetime = START):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += datetime.timedelta(seconds=seconds)


def clone(response: httpx.Response) -> httpx.Response:
    # Each request gets its own response object; the queued one stays pristine.
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class FakeUpstream:
    """httpx.MockTransport handler standing in for yr.no and api.met.no."""

    def __init__(self):
        self.search_results = {"Oslo": httpx.Response(200, json=load_fixture("search_oslo.json"))}
        self.forecast_responses = []
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "www.yr.no":
            result = self.search_results.get(request.url.params.get("q"))
            if result is None:
                return httpx.Response(200, json=load_fixture("search_empty.json"))
            if isinstance(result, Exception):
                raise result
            return clone(result)

        if not self.forecast_responses:
            raise httpx.ConnectError("no forecast response queued", request=request)
        result = self.forecast_responses.pop(0) if len(self.forecast_responses) > 1 else self.forecast_responses[0]
        if isinstance(result, Exception):
            raise result
        return clone(result)

    @property
    def search_requests(self):
        return [r for r in self.requests if r.url.host == "www.yr.no"]

    @property
    def forecast_requests(self):
        return [r for r in self.requests if r.url.host == "api.met.no"]

    def queue(self, *responses):
        self.forecast_responses.extend(responses)


def forecast_ok(expires=None, last_modified="Wed, 01 May 2024 11:27:15 GMT", etag=None, payload=None):
    headers = {}
    if expires is not None:
        headers["Expires"] = http_date(expires)
    if last_modified:
        headers["Last-Modified"] = last_modified
    if etag:
        headers["ETag"] = etag
    return httpx.Response(200, json=payload or load_fixture("forecast_oslo.json"), headers=headers)


def not_modified(expires=None):
    headers = {"Expires": http_date(expires)} if expires is not None else {}
    return httpx.Response(304, headers=headers)


def connect_error():
    return httpx.ConnectError("connection refused")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def publisher():
    return MetricPublisher(CollectorRegistry())


@pytest.fixture
def client(upstream):
    http_client = build_http_client(USER_AGENT, transport=httpx.MockTransport(upstream))
    yield http_client
    asyncio.run(http_client.aclose())


@pytest.fixture
def policy():
    return RefreshPolicy(poll_interval=300, min_interval=60, backoff_base=30, backoff_max=600)


@pytest.fixture
def make_worker(client, publisher, clock, policy):
    resolver = LocationResolver(client)
    fetcher = ConditionalFetcher(client, clock=clock)

    def factory(name="Oslo"):
        return LocationWorker(CacheEntry(name=name, policy=policy), resolver, fetcher, publisher, clock=clock)

    return factory


def sample(publisher, metric, **labels):
    return publisher.registry.get_sample_value(metric, labels)


OSLO = {"location": "Oslo", "latitude": "59.91", "longitude": "10.75"}
