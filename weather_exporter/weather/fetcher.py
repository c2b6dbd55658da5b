import datetime
import logging
from typing import Callable, Dict, Optional

import httpx

from .errors import FetchError, FetchParseError, UpstreamStatusError
from .models import Coordinates, Failed, FetchOutcome, Fresh, NotModified, Validator
from .yr.http_client import fetch_forecast
from .yr.response_processor import (
    PAYLOAD_ERRORS, process_expires, process_forecast_response, process_validator
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def conditional_headers(validator: Optional[Validator]) -> Dict[str, str]:
    headers = {}
    if validator is None:
        return headers
    if validator.etag:
        headers['If-None-Match'] = validator.etag
    if validator.last_modified:
        headers['If-Modified-Since'] = validator.last_modified
    return headers


class ConditionalFetcher:
    """One forecast request per call, classified as Fresh, NotModified or Failed.

    Nothing raised by the transport or the parser escapes ``fetch``.
    """

    def __init__(self, client: httpx.AsyncClient, clock: Callable[[], datetime.datetime] = utcnow):
        self.client = client
        self.clock = clock

    async def fetch(self, coordinates: Coordinates, validator: Optional[Validator] = None,
                    location_name: str = '') -> FetchOutcome:
        label = location_name or f"{coordinates.latitude},{coordinates.longitude}"
        lat, lon = coordinates.rounded()
        headers = conditional_headers(validator)

        logger.info("Fetching weather for %s (rounded coords: %s, %s)", label, lat, lon)
        if headers:
            logger.debug("Conditional headers for %s: %s", label, headers)

        try:
            response = await fetch_forecast(self.client, lat, lon, headers=headers)
            return self._classify(response, label)
        except FetchError as e:
            logger.error("Weather fetch for %s failed: %s", label, e)
            return Failed(reason=str(e), error=e)

    def _classify(self, response: httpx.Response, label: str) -> FetchOutcome:
        status = response.status_code

        if status == 304:
            logger.info("Weather data not modified for %s, using cached version", label)
            return NotModified(expires=process_expires(response.headers))

        if status in (200, 203):
            if status == 203:
                logger.warning("API endpoint is deprecated, please check for updates")
            try:
                payload = response.json()
            except ValueError as e:
                raise FetchParseError(f"Forecast body is not JSON: {e}") from e

            try:
                forecast = process_forecast_response(payload, self.clock())
            except (FetchParseError,) + PAYLOAD_ERRORS as e:
                logger.error(
                    "Unparseable forecast for %s (status %s, %d bytes): %r",
                    label, status, len(response.content), e
                )
                if isinstance(e, FetchParseError):
                    raise
                raise FetchParseError(f"Malformed forecast payload: {e!r}") from e

            expires = process_expires(response.headers)
            logger.info("Received new weather data for %s, valid until %s", label, expires)
            return Fresh(forecast=forecast, validator=process_validator(response.headers), expires=expires)

        if status == 429:
            raise UpstreamStatusError(status, "Rate limited - please reduce request frequency")
        if status == 403:
            raise UpstreamStatusError(status, "API returned 403 Forbidden - check User-Agent configuration")
        raise UpstreamStatusError(status)
