import time

import httpx
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry

from conftest import USER_AGENT, FakeUpstream, forecast_ok
from weather_exporter.core.application import create_app
from weather_exporter.core.config import Settings
from weather_exporter.monitoring.metrics import MetricPublisher
from weather_exporter.weather.errors import ConfigurationError


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    fake.queue(forecast_ok())
    return fake


@pytest.fixture
def app(upstream):
    settings = Settings(user_agent=USER_AGENT, locations=["Oslo", "Atlantis"])
    return create_app(settings, publisher=MetricPublisher(CollectorRegistry()),
                      transport=httpx.MockTransport(upstream))


def test_metrics_endpoint_before_any_fetch(app):
    response = TestClient(app).get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"] == CONTENT_TYPE_LATEST
    assert "# TYPE weather_temperature_celsius gauge" in response.text
    assert "location=" not in response.text


def test_health(app):
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["locations"] == 2
    assert "X-Process-Time" in response.headers


def test_root_describes_configuration(app):
    body = TestClient(app).get("/").json()

    assert body["configuration"]["locations"] == ["Oslo", "Atlantis"]
    assert [loc["location"] for loc in body["scheduler"]["locations"]] == ["Oslo", "Atlantis"]
    assert body["endpoints"]["metrics"].endswith("/metrics")


def test_workers_populate_metrics_while_serving(app, upstream):
    with TestClient(app) as client:
        text = ""
        for _ in range(100):
            text = client.get("/metrics").text
            if 'weather_fetch_success{location="Oslo"} 1.0' in text:
                break
            time.sleep(0.05)

        assert 'weather_fetch_success{location="Oslo"} 1.0' in text
        assert "weather_temperature_celsius{" in text
        assert "Atlantis" not in text
        assert client.get("/health").json()["status"] == "healthy"

    assert not app.state.scheduler.running
    assert app.state.scheduler.client.is_closed


def test_missing_user_agent_fails_before_serving():
    with pytest.raises(ConfigurationError):
        create_app(Settings(user_agent="", locations=["Oslo"]))


def test_root_reports_endpoint_counts(app):
    client = TestClient(app)
    client.get("/health")
    client.get("/health")

    body = client.get("/").json()

    assert body["top_endpoints"]["GET /health"] == {"count": 2, "errors": 0}
    assert body["system_health"]["total_requests"] == 2
