import logging
from typing import Dict

import httpx

from .errors import FetchError, ResolutionFailed
from .models import Location
from .yr.http_client import search_locations
from .yr.response_processor import PAYLOAD_ERRORS, process_search_response

logger = logging.getLogger(__name__)


class LocationResolver:
    """Maps place names to coordinates.

    Successful lookups are kept for the process lifetime since coordinates
    never change. Failures are not remembered, so the next attempt asks
    upstream again.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client
        self._resolved: Dict[str, Location] = {}

    async def resolve(self, name: str) -> Location:
        if not name or not name.strip():
            raise ResolutionFailed(name, "empty location name")

        if cached := self._resolved.get(name):
            return cached

        logger.info("Searching for location: %s", name)

        try:
            data = await search_locations(self.client, name)
            location = process_search_response(data)
        except FetchError as e:
            raise ResolutionFailed(name, str(e)) from e
        except PAYLOAD_ERRORS as e:
            raise ResolutionFailed(name, f"malformed search payload: {e!r}") from e

        if location is None:
            raise ResolutionFailed(name, "no matches")

        logger.info(
            "Found location: %s at (%s, %s)",
            location.name or name, location.coordinates.latitude, location.coordinates.longitude
        )
        self._resolved[name] = location
        return location
