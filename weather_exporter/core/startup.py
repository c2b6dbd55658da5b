import logging
from fastapi import FastAPI
from weather_exporter import __version__

logger = logging.getLogger(__name__)


async def startup_handler(app: FastAPI):
    settings = app.state.settings
    logger.info("Starting Weather Exporter v%s", __version__)
    logger.info("User-Agent: %s", settings.user_agent)
    logger.info("Monitoring locations: %s", ", ".join(settings.locations))
    logger.info("Metrics endpoint: http://%s:%s/metrics", settings.host, settings.port)

    app.state.scheduler.start()


async def shutdown_handler(app: FastAPI):
    logger.info("Shutting down weather exporter...")
    await app.state.scheduler.stop()
    logger.info("Shutdown complete")
