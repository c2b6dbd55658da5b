import asyncio
import datetime
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from weather_exporter.monitoring.metrics import MetricPublisher
from .cache_entry import CacheEntry, EntryPhase, RefreshPolicy, Unresolved
from .errors import ResolutionFailed
from .fetcher import ConditionalFetcher, utcnow
from .models import NotModified
from .resolver import LocationResolver
from .yr.http_client import build_http_client

logger = logging.getLogger(__name__)

MIN_SLEEP_SECONDS = 1.0
DEFAULT_SHUTDOWN_TIMEOUT = 10.0


class LocationWorker:
    """Owns one location: sleep until eligible, fetch, update the entry, publish."""

    def __init__(self, entry: CacheEntry, resolver: LocationResolver, fetcher: ConditionalFetcher,
                 publisher: MetricPublisher, clock: Callable[[], datetime.datetime] = utcnow,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.entry = entry
        self.resolver = resolver
        self.fetcher = fetcher
        self.publisher = publisher
        self.clock = clock
        self.sleep = sleep

    @property
    def name(self) -> str:
        return self.entry.name

    async def refresh(self) -> bool:
        """Runs one refresh if the entry is eligible. Returns False when skipped."""
        entry = self.entry
        async with entry.lock:
            now = self.clock()
            if not entry.is_eligible(now):
                logger.debug("Cache still valid for %s until %s, skipping update", self.name, entry.not_before)
                if entry.phase is EntryPhase.WARM:
                    self.publisher.record_cache_hit(self.name)
                return False

            if isinstance(entry.state, Unresolved):
                try:
                    entry.resolved(await self.resolver.resolve(self.name))
                except ResolutionFailed as e:
                    entry.record_failure(str(e), self.clock())
                    logger.error(
                        "Failed to search for location %s: %s (attempt %d, retry after %s)",
                        self.name, e.reason, entry.consecutive_failures, entry.not_before
                    )
                    return True

            location = entry.location
            outcome = await self.fetcher.fetch(location.coordinates, entry.validator, location_name=self.name)
            self.publisher.record_api_call(self.name)

            if entry.apply(outcome, self.clock()):
                if isinstance(outcome, NotModified):
                    self.publisher.record_cache_hit(self.name)
                self.publisher.publish_forecast(self.name, location.coordinates, entry.forecast)
                logger.info("Metrics updated for %s, next refresh after %s", self.name, entry.not_before)
            else:
                self.publisher.publish_failure(self.name)
                logger.warning(
                    "Weather update for %s failed (%d consecutive): %s; retry after %s",
                    self.name, entry.consecutive_failures, entry.last_failure_reason, entry.not_before
                )
            return True

    def next_delay(self) -> float:
        remaining = (self.entry.not_before - self.clock()).total_seconds()
        return max(MIN_SLEEP_SECONDS, min(self.entry.policy.poll_interval, remaining))

    def _record_unexpected(self, error: Exception):
        # Same backoff as a failed fetch.
        self.entry.record_failure(f"unexpected error: {error!r}", self.clock())
        if not isinstance(self.entry.state, Unresolved):
            self.publisher.publish_failure(self.name)

    async def run(self):
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Unexpected error while refreshing %s", self.name)
                self._record_unexpected(e)
            await self.sleep(self.next_delay())


class RefreshScheduler:
    def __init__(self, workers: List[LocationWorker], client: Optional[httpx.AsyncClient] = None,
                 shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT):
        self.workers = workers
        self.client = client
        self.shutdown_timeout = shutdown_timeout
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def entries(self) -> Dict[str, CacheEntry]:
        return {worker.name: worker.entry for worker in self.workers}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def start(self):
        for worker in self.workers:
            if worker.name in self._tasks and not self._tasks[worker.name].done():
                continue
            self._tasks[worker.name] = asyncio.create_task(worker.run(), name=f"weather-worker:{worker.name}")
        logger.info("Started %d location workers", len(self._tasks))

    async def stop(self):
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.shutdown_timeout)
            if pending:
                logger.warning("%d location workers did not stop within %.1fs", len(pending), self.shutdown_timeout)
        self._tasks.clear()

        if self.client is not None:
            await self.client.aclose()
        logger.info("Location workers stopped")

    def get_status(self):
        return {
            'running': self.running,
            'locations': [worker.entry.get_status() for worker in self.workers]
        }


def build_scheduler(settings, publisher: MetricPublisher,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> RefreshScheduler:
    # Raises ConfigurationError before any worker exists if the User-Agent is missing.
    client = build_http_client(settings.user_agent, settings.request_timeout, transport=transport)

    policy = RefreshPolicy(
        poll_interval=settings.poll_interval,
        min_interval=settings.min_interval,
        backoff_base=settings.backoff_base,
        backoff_max=settings.backoff_max
    )
    resolver = LocationResolver(client)
    fetcher = ConditionalFetcher(client)

    workers = [
        LocationWorker(CacheEntry(name=name, policy=policy), resolver, fetcher, publisher)
        for name in settings.locations
    ]
    return RefreshScheduler(workers, client=client, shutdown_timeout=settings.shutdown_timeout)
