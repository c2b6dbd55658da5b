import datetime
from dataclasses import dataclass
from typing import Optional, Tuple, Union

COORDINATE_PRECISION = 4


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def rounded(self) -> Tuple[float, float]:
        # The forecast API rejects more than four decimals.
        return round(self.latitude, COORDINATE_PRECISION), round(self.longitude, COORDINATE_PRECISION)


@dataclass(frozen=True)
class Location:
    name: str
    coordinates: Coordinates


@dataclass(frozen=True)
class Forecast:
    time: datetime.datetime
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None
    pressure: Optional[float] = None
    precipitation: Optional[float] = None
    cloud_cover: Optional[float] = None
    uv_index: Optional[float] = None


@dataclass(frozen=True)
class Validator:
    """Conditional-request token handed back verbatim on the next fetch."""
    etag: Optional[str] = None
    last_modified: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.etag or self.last_modified)


@dataclass(frozen=True)
class Fresh:
    forecast: Forecast
    validator: Optional[Validator]
    expires: Optional[datetime.datetime]


@dataclass(frozen=True)
class NotModified:
    expires: Optional[datetime.datetime]


@dataclass(frozen=True)
class Failed:
    reason: str
    error: Optional[Exception] = None


FetchOutcome = Union[Fresh, NotModified, Failed]
