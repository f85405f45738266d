"""
Error types raised by the infrastructure layer.
"""


class FetchError(Exception):
    """A call to an external service failed (non-2xx status or transport error)."""

    def __init__(self, status_code: int, message: str, endpoint: str = ""):
        super().__init__(f"{status_code} - {message}")
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint


class GeometryQueryError(FetchError):
    """The map server could not return the geometry of a stand."""


class FeatureParseError(ValueError):
    """A map server payload could not be decoded as GeoJSON or GML."""


class ConfigurationError(Exception):
    """Configuration is missing or left at a placeholder value.

    Reported as a startup warning rather than raised.
    """
