import datetime
from fastapi import APIRouter, Request
from weather_exporter import __version__
from weather_exporter.responses import PrettyJSONResponse
from weather_exporter.weather.yr import get_client_info

router = APIRouter()


def build_base_url(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}"


@router.get("/health", response_class=PrettyJSONResponse)
async def health(request: Request):
    system_health = request.app.state.system_monitor.get_system_health()
    return {
        "status": "healthy",
        "timestamp_utc": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "uptime_seconds": system_health['uptime_seconds'],
        "memory_usage_mb": system_health['memory_usage_mb'],
        "locations": len(request.app.state.settings.locations)
    }


@router.get("/", response_class=PrettyJSONResponse)
async def root_endpoints(request: Request):
    base_url = build_base_url(request)
    state = request.app.state

    return {
        "server": "Weather Exporter",
        "version": __version__,
        "timestamp_utc": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "configuration": state.settings.describe(),
        "scheduler": state.scheduler.get_status(),
        "upstream": get_client_info(),
        "system_health": state.system_monitor.get_system_health(),
        "top_endpoints": state.system_monitor.get_endpoint_stats(10),
        "endpoints": {
            "self": f"{base_url}/",
            "metrics": f"{base_url}/metrics",
            "health": f"{base_url}/health"
        }
    }
