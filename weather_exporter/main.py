import logging
import sys
from typing import Optional, Sequence

import uvicorn

from weather_exporter.core.application import create_app
from weather_exporter.core.config import Settings
from weather_exporter.weather.errors import ConfigurationError

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
LEVEL_ALIASES = {"trace": "DEBUG", "warn": "WARNING"}


def setup_logging(level: str) -> None:
    name = LEVEL_ALIASES.get(level.lower(), level.upper())
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True
    )


def print_check(settings: Settings) -> None:
    print("✓ Configuration is valid")
    print(f"  User-Agent: {settings.user_agent}")
    print(f"  Locations: {', '.join(settings.locations)}")
    print(f"  Port: {settings.port}")
    print(f"  Log level: {settings.log_level}")
    print(f"  Poll interval: {settings.poll_interval:g}s")


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = Settings.from_args(argv)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    level = settings.log_level.lower()
    setup_logging(level)

    if settings.check:
        print_check(settings)
        return 0

    try:
        app = create_app(settings)
    except ConfigurationError as e:
        logging.getLogger(__name__).error("Configuration error: %s", e)
        return 2

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=LEVEL_ALIASES.get(level, level).lower())
    return 0
