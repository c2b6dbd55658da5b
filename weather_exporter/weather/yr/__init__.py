from .config import get_client_info
from .http_client import build_http_client, search_locations, fetch_forecast

__all__ = [
    'get_client_info',
    'build_http_client',
    'search_locations',
    'fetch_forecast'
]
