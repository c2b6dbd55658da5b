import threading
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from weather_exporter.weather.models import Coordinates, Forecast

FORECAST_LABELS = ['location', 'latitude', 'longitude']
LOCATION_LABELS = ['location']

# field on Forecast -> (metric name, help)
FORECAST_GAUGES = {
    'temperature': ('weather_temperature_celsius', 'Temperature in Celsius'),
    'humidity': ('weather_humidity_percent', 'Relative humidity percentage'),
    'wind_speed': ('weather_wind_speed_mps', 'Wind speed in meters per second'),
    'wind_direction': ('weather_wind_direction_degrees', 'Wind direction in degrees'),
    'pressure': ('weather_pressure_hpa', 'Air pressure at sea level in hectopascals'),
    'precipitation': ('weather_precipitation_mm', 'Precipitation over the next hour in millimeters'),
    'cloud_cover': ('weather_cloud_coverage_percent', 'Cloud coverage percentage'),
    'uv_index': ('weather_uv_index', 'Clear sky UV index'),
}

FORECAST_TIME_GAUGE = ('weather_forecast_timestamp_seconds', 'Unix time the published forecast values apply to')
FETCH_SUCCESS_GAUGE = ('weather_fetch_success', 'Whether the last weather fetch was successful')
API_CALLS_COUNTER = ('weather_api_calls', 'Total number of forecast API calls made')
CACHE_HITS_COUNTER = ('weather_cache_hits', 'Number of times cached data was used')


@dataclass(frozen=True)
class ForecastSnapshot:
    coordinates: Coordinates
    forecast: Forecast

    def labels(self, name: str):
        return [name, str(self.coordinates.latitude), str(self.coordinates.longitude)]


class MetricPublisher(Collector):
    """Per-location snapshots exposed through a custom collector.

    Writers replace a whole snapshot under ``_lock`` and ``collect`` copies
    everything under the same lock, so a scrape never sees half of an update.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self._lock = threading.Lock()
        self._forecasts: Dict[str, ForecastSnapshot] = {}
        self._success: Dict[str, int] = {}
        self._api_calls: Dict[str, int] = {}
        self._cache_hits: Dict[str, int] = {}
        self.registry = registry if registry is not None else CollectorRegistry()
        self.registry.register(self)

    def publish_forecast(self, name: str, coordinates: Coordinates, forecast: Forecast):
        snapshot = ForecastSnapshot(coordinates=coordinates, forecast=forecast)
        with self._lock:
            self._forecasts[name] = snapshot
            self._success[name] = 1

    def publish_failure(self, name: str):
        with self._lock:
            self._success[name] = 0

    def record_api_call(self, name: str):
        with self._lock:
            self._api_calls[name] = self._api_calls.get(name, 0) + 1

    def record_cache_hit(self, name: str):
        with self._lock:
            self._cache_hits[name] = self._cache_hits.get(name, 0) + 1

    def collect(self) -> Iterator[Metric]:
        with self._lock:
            forecasts = dict(self._forecasts)
            success = dict(self._success)
            api_calls = dict(self._api_calls)
            cache_hits = dict(self._cache_hits)

        for field_name, (metric_name, documentation) in FORECAST_GAUGES.items():
            family = GaugeMetricFamily(metric_name, documentation, labels=FORECAST_LABELS)
            for name, snapshot in forecasts.items():
                value = getattr(snapshot.forecast, field_name)
                if value is not None:
                    family.add_metric(snapshot.labels(name), value)
            yield family

        time_family = GaugeMetricFamily(*FORECAST_TIME_GAUGE, labels=FORECAST_LABELS)
        for name, snapshot in forecasts.items():
            time_family.add_metric(snapshot.labels(name), snapshot.forecast.time.timestamp())
        yield time_family

        success_family = GaugeMetricFamily(*FETCH_SUCCESS_GAUGE, labels=LOCATION_LABELS)
        for name, value in success.items():
            success_family.add_metric([name], value)
        yield success_family

        calls_family = CounterMetricFamily(*API_CALLS_COUNTER, labels=LOCATION_LABELS)
        for name, value in api_calls.items():
            calls_family.add_metric([name], value)
        yield calls_family

        hits_family = CounterMetricFamily(*CACHE_HITS_COUNTER, labels=LOCATION_LABELS)
        for name, value in cache_hits.items():
            hits_family.add_metric([name], value)
        yield hits_family
