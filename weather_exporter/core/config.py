import argparse
import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from weather_exporter.weather.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 9090
DEFAULT_HOST = "0.0.0.0"
DEFAULT_LOCATIONS = "Oslo"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_POLL_INTERVAL = 300.0
DEFAULT_MIN_INTERVAL = 60.0
DEFAULT_BACKOFF_BASE = 30.0
DEFAULT_BACKOFF_MAX = 1800.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SHUTDOWN_TIMEOUT = 10.0

LOG_LEVELS = ("trace", "debug", "info", "warn", "warning", "error", "critical")
PLACEHOLDER_MARKERS = ("test", "example", "change-me")

USER_AGENT_HELP = """\
USER-AGENT FORMAT:
    The User-Agent must uniquely identify your application (required by yr.no).
    Format: <application>/<version> <contact>

    Examples:
    - 'my-weather-app/1.0 github.com/username/repo'
    - 'home-automation/2.5 https://my-website.com'
    - 'acme-corp/3.0 ops@acme.com'
"""


def validate_user_agent(user_agent: Optional[str]) -> str:
    ua = (user_agent or "").strip()

    if not ua:
        raise ConfigurationError(
            "User-Agent cannot be empty.\nExample: 'my-app/1.0 github.com/user/repo'"
        )

    if len(ua) < 10:
        raise ConfigurationError(
            "User-Agent too short. Please provide a descriptive identifier.\n"
            "Example: 'my-app/1.0 github.com/username/repo'"
        )

    if '/' not in ua and '@' not in ua and '.' not in ua:
        raise ConfigurationError(
            "User-Agent should include version and/or contact information.\n"
            "Examples:\n"
            "  - 'my-app/1.0 github.com/user/repo'\n"
            "  - 'weather-monitor/2.0 contact@example.com'\n"
            "  - 'home-automation https://my-site.com'"
        )

    lower = ua.lower()
    if any(marker in lower for marker in PLACEHOLDER_MARKERS):
        logger.warning("User-Agent appears to be a placeholder. Please use a unique identifier for production.")

    return ua


def clean_locations(locations: Iterable[str]) -> List[str]:
    cleaned = []
    for name in locations:
        name = name.strip()
        if name and name not in cleaned:
            cleaned.append(name)
    return cleaned


def split_locations(value: Optional[str]) -> List[str]:
    return (value or "").split(',')


@dataclass
class Settings:
    user_agent: str
    locations: List[str] = field(default_factory=lambda: [DEFAULT_LOCATIONS])
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    log_level: str = DEFAULT_LOG_LEVEL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    min_interval: float = DEFAULT_MIN_INTERVAL
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_max: float = DEFAULT_BACKOFF_MAX
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    check: bool = False

    def validate(self) -> "Settings":
        self.user_agent = validate_user_agent(self.user_agent)

        self.locations = clean_locations(self.locations)
        if not self.locations:
            raise ConfigurationError("At least one location must be specified")

        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Invalid port {self.port}: must be between 1 and 65535")

        if self.log_level.lower() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level '{self.log_level}': expected one of {', '.join(LOG_LEVELS)}")

        for name in ('poll_interval', 'min_interval', 'backoff_base', 'backoff_max', 'request_timeout'):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.backoff_max < self.backoff_base:
            raise ConfigurationError("backoff_max must not be smaller than backoff_base")

        return self

    @classmethod
    def from_args(cls, argv: Optional[Sequence[str]] = None) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))
        args = build_parser().parse_args(argv)

        if not args.user_agent:
            raise ConfigurationError(
                "User-Agent is required for yr.no API compliance "
                "(use --user-agent or WEATHER_USER_AGENT)"
            )

        settings = cls(
            user_agent=args.user_agent,
            locations=split_locations(args.locations),
            port=args.port,
            host=args.host,
            log_level=args.log_level,
            poll_interval=args.poll_interval,
            check=args.check
        )
        return settings.validate()

    def describe(self) -> dict:
        return {
            'user_agent': self.user_agent,
            'locations': list(self.locations),
            'port': self.port,
            'log_level': self.log_level,
            'poll_interval_seconds': self.poll_interval,
            'min_interval_seconds': self.min_interval,
            'backoff_max_seconds': self.backoff_max
        }


def _env_number(name: str, default, cast):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weather-exporter",
        description="Export weather data from yr.no as Prometheus metrics",
        epilog=USER_AGENT_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("-u", "--user-agent", default=os.getenv("WEATHER_USER_AGENT"),
                        help="Unique identifier for your application (env: WEATHER_USER_AGENT)")
    parser.add_argument("-l", "--locations", default=os.getenv("WEATHER_LOCATIONS", DEFAULT_LOCATIONS),
                        help="Comma-separated locations to monitor, e.g. 'Oslo,Stockholm' (env: WEATHER_LOCATIONS)")
    parser.add_argument("-p", "--port", type=int, default=_env_number("PORT", DEFAULT_PORT, int),
                        help="Port to listen on (env: PORT)")
    parser.add_argument("--host", default=os.getenv("WEATHER_HOST", DEFAULT_HOST),
                        help="Address to bind (env: WEATHER_HOST)")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL),
                        help="Log level: trace, debug, info, warn, error (env: LOG_LEVEL)")
    parser.add_argument("--poll-interval", type=float,
                        default=_env_number("WEATHER_POLL_INTERVAL", DEFAULT_POLL_INTERVAL, float),
                        help="Seconds between eligibility checks per location (env: WEATHER_POLL_INTERVAL)")
    parser.add_argument("--check", action="store_true",
                        help="Validate configuration without starting the server")
    return parser
