"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from pydantic import Field

from forest_dashboard.infrastructure.errors import ConfigurationError


DEFAULT_GEOSERVER_URL = "http://localhost:8080/geoserver"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stands REST API
    stands_api_base_url: str = Field(
        default="http://localhost:8081/api",
        description="Base URL of the stands REST API"
    )
    request_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for outbound HTTP requests"
    )
    admin_enabled: bool = Field(
        default=False,
        description="Allow create/update/delete passthrough calls"
    )

    # GeoServer
    geoserver_url: str = Field(
        default=DEFAULT_GEOSERVER_URL,
        description="Base URL of the GeoServer instance"
    )
    wfs_typename: str = Field(
        default="forest:forest_stand",
        description="WFS feature type holding stand polygons"
    )
    wms_layer: str = Field(
        default="forest:forest_stand",
        description="WMS layer rendering stand polygons"
    )

    # Retry Configuration
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of attempts for transport failures"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=1,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=5,
        description="Maximum wait time in seconds between retries"
    )

    # Map defaults
    center_lon: float = Field(default=118.8, description="Default map centre longitude")
    center_lat: float = Field(default=32.07, description="Default map centre latitude")
    default_zoom: float = Field(default=12, description="Default zoom level")
    min_zoom: float = Field(default=10, description="Minimum zoom level")
    max_zoom: float = Field(default=18, description="Maximum zoom level")
    map_bounds: list[float] = Field(
        default=[118.3, 31.6, 119.3, 32.6],
        description="Default map bounds as [min_lon, min_lat, max_lon, max_lat]"
    )

    # Map interaction
    hit_tolerance_px: float = Field(
        default=5.0,
        description="Pixel tolerance for hit-testing rendered markers"
    )
    probe_buffer_factor: float = Field(
        default=50.0,
        description="Probe buffer as a multiple of the map resolution"
    )
    highlight_duration: float = Field(
        default=3.0,
        description="Seconds a highlight stays on the map"
    )
    radius_circle_duration: float = Field(
        default=5.0,
        description="Seconds a radius circle stays on the map"
    )
    error_popup_duration: float = Field(
        default=2.0,
        description="Seconds before an error popup closes itself"
    )
    radius_options: list[int] = Field(
        default=[500, 1000, 2000, 3000, 5000],
        description="Preset radius values in meters"
    )
    default_radius: int = Field(
        default=1000,
        description="Default radius query value in meters"
    )

    # Statistics
    annual_growth_rate: float = Field(
        default=0.05,
        description="Assumed annual growth rate used by the growth projection"
    )
    projection_years: int = Field(
        default=5,
        description="Number of years covered by the growth projection"
    )

    # Colours
    species_colors: dict[str, str] = Field(
        default={
            "Camellia": "#2E7D32",
            "Fir": "#388E3C",
            "Camphor": "#43A047",
            "Sweetgum": "#D32F2F",
            "Pine": "#795548",
            "Schima": "#00796B",
            "Bamboo": "#689F38",
            "Mixed broadleaf": "#757575",
            "unknown": "#9E9E9E",
        },
        description="Explicit colour per species"
    )
    origin_colors: dict[str, str] = Field(
        default={
            "planted": "#1976D2",
            "natural": "#388E3C",
            "aerial-seeded": "#F57C00",
            "coppice": "#7B1FA2",
            "unknown": "#757575",
        },
        description="Explicit colour per stand origin"
    )
    chart_palette: list[str] = Field(
        default=[
            "#2E7D32", "#388E3C", "#43A047", "#66BB6A",
            "#D32F2F", "#795548", "#00796B", "#689F38",
            "#757575", "#1976D2", "#F57C00", "#7B1FA2",
        ],
        description="Cyclic palette for species without an explicit colour"
    )
    fallback_color: str = Field(
        default="#757575",
        description="Colour used when no palette is configured"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="Forest Stand Dashboard",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


def check_configuration(config: Settings) -> list[ConfigurationError]:
    """
    Collect configuration warnings.

    None of these block startup; the map stays usable with the marker
    layer even when the map server is unreachable.

    Args:
        config: Settings to inspect

    Returns:
        One ConfigurationError per problem found; they are reported, not raised
    """
    warnings = []
    if not config.geoserver_url or config.geoserver_url == DEFAULT_GEOSERVER_URL:
        warnings.append(ConfigurationError(
            f"GeoServer URL is not configured, using default {DEFAULT_GEOSERVER_URL}"
        ))
    if not config.stands_api_base_url:
        warnings.append(ConfigurationError("Stands API base URL is empty"))
    if config.default_radius <= 0:
        warnings.append(ConfigurationError(f"Default radius {config.default_radius} is not positive"))
    return warnings


# Global settings instance
settings = Settings()
