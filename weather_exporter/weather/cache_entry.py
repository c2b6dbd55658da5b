import asyncio
import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .models import Coordinates, Failed, FetchOutcome, Forecast, Fresh, Location, NotModified, Validator

EPOCH = datetime.datetime.fromtimestamp(0, datetime.timezone.utc)


class EntryPhase(Enum):
    UNRESOLVED = "unresolved"
    COLD = "cold"
    WARM = "warm"


@dataclass(frozen=True)
class Unresolved:
    phase = EntryPhase.UNRESOLVED


@dataclass(frozen=True)
class Cold:
    location: Location
    phase = EntryPhase.COLD


@dataclass(frozen=True)
class Warm:
    location: Location
    forecast: Forecast
    validator: Optional[Validator] = None
    phase = EntryPhase.WARM


EntryState = Union[Unresolved, Cold, Warm]


@dataclass(frozen=True)
class RefreshPolicy:
    poll_interval: float = 300.0
    min_interval: float = 60.0
    backoff_base: float = 30.0
    backoff_max: float = 1800.0

    def backoff_delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        # Cap the exponent so huge failure counts cannot overflow the float.
        return min(self.backoff_base * (2 ** min(failures - 1, 32)), self.backoff_max)


@dataclass
class CacheEntry:
    name: str
    policy: RefreshPolicy = field(default_factory=RefreshPolicy)
    state: EntryState = field(default_factory=Unresolved)
    not_before: datetime.datetime = EPOCH
    consecutive_failures: int = 0
    last_fetch_succeeded: bool = False
    last_success_time: Optional[datetime.datetime] = None
    last_failure_reason: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def phase(self) -> EntryPhase:
        return self.state.phase

    @property
    def location(self) -> Optional[Location]:
        return getattr(self.state, 'location', None)

    @property
    def coordinates(self) -> Optional[Coordinates]:
        location = self.location
        return location.coordinates if location else None

    @property
    def forecast(self) -> Optional[Forecast]:
        return getattr(self.state, 'forecast', None)

    @property
    def validator(self) -> Optional[Validator]:
        return getattr(self.state, 'validator', None)

    def is_eligible(self, now: datetime.datetime) -> bool:
        return now >= self.not_before

    def resolved(self, location: Location):
        if isinstance(self.state, Unresolved):
            self.state = Cold(location=location)

    def apply(self, outcome: FetchOutcome, now: datetime.datetime) -> bool:
        """Advances the entry with a fetch outcome. Returns True on success."""
        if isinstance(outcome, Fresh):
            self.state = Warm(location=self.location, forecast=outcome.forecast, validator=outcome.validator)
            self._on_success(outcome.expires, now)
            return True

        if isinstance(outcome, NotModified):
            if isinstance(self.state, Warm):
                self._on_success(outcome.expires, now)
                return True
            self.record_failure("not modified without cached data", now)
            return False

        reason = outcome.reason if isinstance(outcome, Failed) else f"unexpected outcome {outcome!r}"
        self.record_failure(reason, now)
        return False

    def record_failure(self, reason: str, now: datetime.datetime):
        self.consecutive_failures += 1
        self.last_fetch_succeeded = False
        self.last_failure_reason = reason
        retry_at = now + datetime.timedelta(seconds=self.policy.backoff_delay(self.consecutive_failures))
        self.not_before = max(self.not_before, retry_at)

    def _on_success(self, expires: Optional[datetime.datetime], now: datetime.datetime):
        self.consecutive_failures = 0
        self.last_fetch_succeeded = True
        self.last_failure_reason = None
        self.last_success_time = now

        floor = now + datetime.timedelta(seconds=self.policy.min_interval)
        if expires is not None and expires > floor:
            self.not_before = expires
        else:
            self.not_before = now + datetime.timedelta(seconds=self.policy.poll_interval)

    def get_status(self):
        coordinates = self.coordinates
        forecast = self.forecast
        return {
            'location': self.name,
            'phase': self.phase.value,
            'latitude': coordinates.latitude if coordinates else None,
            'longitude': coordinates.longitude if coordinates else None,
            'last_fetch_succeeded': self.last_fetch_succeeded,
            'consecutive_failures': self.consecutive_failures,
            'last_failure_reason': self.last_failure_reason,
            'not_before': self.not_before.isoformat() if self.not_before != EPOCH else None,
            'last_success_time': self.last_success_time.isoformat() if self.last_success_time else None,
            'forecast_time': forecast.time.isoformat() if forecast else None
        }
