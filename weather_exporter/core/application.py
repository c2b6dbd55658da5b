import time
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from weather_exporter import __version__
from weather_exporter.core.config import Settings
from weather_exporter.core.startup import startup_handler, shutdown_handler
from weather_exporter.monitoring import MetricPublisher, SystemMonitor
from weather_exporter.responses import PrettyJSONResponse
from weather_exporter.routers import metrics, status
from weather_exporter.weather.coordinator import RefreshScheduler, build_scheduler

logger = logging.getLogger(__name__)


async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception for request: %s %s", request.method, request.url)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "detail": "An unexpected server error occurred."},
    )


def create_app(settings: Settings, publisher: Optional[MetricPublisher] = None,
               scheduler: Optional[RefreshScheduler] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    publisher = publisher or MetricPublisher()
    # build_scheduler raises ConfigurationError here, before anything is served.
    scheduler = scheduler or build_scheduler(settings, publisher, transport=transport)

    app = FastAPI(
        default_response_class=PrettyJSONResponse,
        debug=False,
        title="Weather Exporter",
        version=__version__,
        description="Export weather data from yr.no as Prometheus metrics"
    )

    app.state.settings = settings
    app.state.publisher = publisher
    app.state.scheduler = scheduler
    app.state.system_monitor = SystemMonitor()

    app.add_exception_handler(Exception, generic_exception_handler)
    app.middleware("http")(monitoring_middleware)

    _setup_routers(app)
    _setup_events(app)

    return app


async def monitoring_middleware(request: Request, call_next):
    system_monitor = request.app.state.system_monitor
    start_time = time.time()
    endpoint = f"{request.method} {request.url.path}"

    try:
        response = await call_next(request)
    except Exception:
        system_monitor.record_request(endpoint, time.time() - start_time, 500)
        raise

    process_time = time.time() - start_time
    system_monitor.record_request(endpoint, process_time, response.status_code)
    response.headers["X-Process-Time"] = f"{process_time:.4f}"
    return response


def _setup_routers(app: FastAPI):
    app.include_router(metrics.router)
    app.include_router(status.router)


def _setup_events(app: FastAPI):
    @app.on_event("startup")
    async def startup():
        await startup_handler(app)

    @app.on_event("shutdown")
    async def shutdown():
        await shutdown_handler(app)
