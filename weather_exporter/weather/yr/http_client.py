from typing import Any, Dict, Optional

import httpx

from weather_exporter.weather.errors import ConfigurationError, FetchParseError, FetchTransportError, UpstreamStatusError
from .config import (
    SEARCH_API_URL, FORECAST_API_URL, DEFAULT_REQUEST_TIMEOUT,
    get_timeout_config, get_search_params, get_forecast_params
)


def build_http_client(user_agent: Optional[str], timeout: float = DEFAULT_REQUEST_TIMEOUT,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Shared client for every upstream call.

    MET Norway blocks anonymous traffic, so a client without an identifying
    User-Agent is a configuration error rather than a per-request failure.
    """
    if not user_agent or not user_agent.strip():
        raise ConfigurationError("User-Agent is required for yr.no API compliance")

    return httpx.AsyncClient(
        headers={'User-Agent': user_agent.strip()},
        timeout=get_timeout_config(timeout),
        follow_redirects=True,
        transport=transport
    )


async def search_locations(client: httpx.AsyncClient, name: str) -> Dict[str, Any]:
    try:
        response = await client.get(SEARCH_API_URL, params=get_search_params(name))
    except httpx.TimeoutException as e:
        raise FetchTransportError(f"Location search timeout: {e}") from e
    except httpx.HTTPError as e:
        raise FetchTransportError(f"Location search error: {e}") from e

    if response.status_code != 200:
        raise UpstreamStatusError(response.status_code)

    try:
        return response.json()
    except ValueError as e:
        raise FetchParseError(f"Location search returned invalid JSON: {e}") from e


async def fetch_forecast(client: httpx.AsyncClient, lat: float, lon: float,
                         headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    try:
        return await client.get(FORECAST_API_URL, params=get_forecast_params(lat, lon), headers=headers)
    except httpx.TimeoutException as e:
        raise FetchTransportError(f"Forecast API timeout: {e}") from e
    except httpx.HTTPError as e:
        raise FetchTransportError(f"Forecast API error: {e}") from e
