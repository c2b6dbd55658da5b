import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional

from weather_exporter.weather.errors import FetchParseError
from weather_exporter.weather.models import Coordinates, Forecast, Location, Validator

INSTANT_FIELDS = {
    'temperature': 'air_temperature',
    'humidity': 'relative_humidity',
    'wind_speed': 'wind_speed',
    'wind_direction': 'wind_from_direction',
    'pressure': 'air_pressure_at_sea_level',
    'cloud_cover': 'cloud_area_fraction',
    'uv_index': 'ultraviolet_index_clear_sky'
}


def _as_dict(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise FetchParseError(f"Expected an object for {what}, got {type(value).__name__}")
    return value


def process_search_response(data: Any) -> Optional[Location]:
    data = _as_dict(data, 'search payload')
    embedded = _as_dict(data.get('_embedded') or {}, '_embedded')
    matches = embedded.get('location') or []
    if not isinstance(matches, list):
        raise FetchParseError(f"Expected a list for _embedded.location, got {type(matches).__name__}")
    if not matches:
        return None

    first = _as_dict(matches[0], 'search match')
    position = _as_dict(first.get('position'), 'search match position')
    try:
        coordinates = Coordinates(float(position['lat']), float(position['lon']))
    except (KeyError, TypeError, ValueError) as e:
        raise FetchParseError(f"Search match without usable position: {e}") from e

    name = first.get('name')
    return Location(name=name if isinstance(name, str) else '', coordinates=coordinates)


def _parse_time(value: Any) -> datetime.datetime:
    if not isinstance(value, str):
        raise FetchParseError(f"Invalid timeseries time: {value!r}")
    try:
        parsed = datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError as e:
        raise FetchParseError(f"Invalid timeseries time: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


# Raised by payload shapes the checks above did not anticipate.
PAYLOAD_ERRORS = (LookupError, TypeError, ValueError, AttributeError)


def _optional_float(details: Dict[str, Any], key: str) -> Optional[float]:
    value = details.get(key)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise FetchParseError(f"Non-numeric value for {key}: {value!r}") from e


def process_forecast_response(data: Any, now: datetime.datetime) -> Forecast:
    """Picks the timeseries entry closest to ``now`` and flattens it."""
    try:
        timeseries = data['properties']['timeseries']
    except (KeyError, TypeError) as e:
        raise FetchParseError(f"Forecast payload missing properties.timeseries: {e}") from e

    if not isinstance(timeseries, list) or not timeseries:
        raise FetchParseError("Forecast payload has no timeseries entries")

    entries = []
    for entry in timeseries:
        if not isinstance(entry, dict):
            raise FetchParseError(f"Unexpected timeseries entry: {entry!r}")
        entries.append((_parse_time(entry.get('time')), entry))

    time, current = min(entries, key=lambda pair: abs((pair[0] - now).total_seconds()))

    entry_data = _as_dict(current.get('data'), f"timeseries entry {time.isoformat()} data")
    instant = _as_dict(entry_data.get('instant'), 'instant')
    details = _as_dict(instant.get('details'), 'instant details')

    values = {field: _optional_float(details, key) for field, key in INSTANT_FIELDS.items()}

    next_hour = _as_dict(entry_data.get('next_1_hours') or {}, 'next_1_hours')
    next_details = _as_dict(next_hour.get('details') or {}, 'next_1_hours details')
    values['precipitation'] = _optional_float(next_details, 'precipitation_amount')

    return Forecast(time=time, **values)


def process_expires(headers: Mapping[str, str]) -> Optional[datetime.datetime]:
    value = headers.get('expires')
    if not value:
        return None
    try:
        expires = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=datetime.timezone.utc)
    return expires


def process_validator(headers: Mapping[str, str]) -> Optional[Validator]:
    validator = Validator(etag=headers.get('etag'), last_modified=headers.get('last-modified'))
    return validator if validator else None
