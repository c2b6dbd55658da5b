from typing import Optional


class WeatherExporterError(Exception):
    pass


class ConfigurationError(WeatherExporterError):
    """Invalid startup configuration. Only raised before the workers run."""


class ResolutionFailed(WeatherExporterError):
    def __init__(self, location_name: str, reason: str):
        self.location_name = location_name
        self.reason = reason
        super().__init__(f"Could not resolve location '{location_name}': {reason}")


class FetchError(WeatherExporterError):
    pass


class FetchTransportError(FetchError):
    pass


class FetchParseError(FetchError):
    pass


class UpstreamStatusError(FetchError):
    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"Unexpected API response: {status_code}")
