import httpx

SEARCH_API_URL = 'https://www.yr.no/api/v0/locations/search'
FORECAST_API_URL = 'https://api.met.no/weatherapi/locationforecast/2.0/compact'

DEFAULT_REQUEST_TIMEOUT = 30.0


def get_timeout_config(total: float = DEFAULT_REQUEST_TIMEOUT) -> httpx.Timeout:
    return httpx.Timeout(total, connect=min(10.0, total))


def get_search_params(name: str) -> dict:
    return {'q': name}


def get_forecast_params(lat: float, lon: float) -> dict:
    return {
        'lat': lat,
        'lon': lon
    }


def get_client_info():
    return {
        'service': 'MET Norway',
        'endpoints': {
            'search': SEARCH_API_URL,
            'forecast': FORECAST_API_URL
        },
        'timeout_config': {
            'total': DEFAULT_REQUEST_TIMEOUT
        },
        'conditional_requests': ['If-None-Match', 'If-Modified-Since']
    }
