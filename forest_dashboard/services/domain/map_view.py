"""
Map viewport state.
"""
from typing import Optional

from pydantic import BaseModel

from forest_dashboard.config import Settings
from forest_dashboard.utils.geo_projection import resolution_for_zoom


class ViewState(BaseModel):
    center_lon: float
    center_lat: float
    zoom: float
    resolution: float


class MapView:
    """Centre and zoom of the map, with zoom clamped to the configured range."""

    def __init__(self, config: Settings):
        self.min_zoom = config.min_zoom
        self.max_zoom = config.max_zoom
        self.center_lon = config.center_lon
        self.center_lat = config.center_lat
        self.zoom = self._clamp(config.default_zoom)

    def _clamp(self, zoom: float) -> float:
        return max(self.min_zoom, min(self.max_zoom, zoom))

    @property
    def resolution(self) -> float:
        """Meters per pixel at the current zoom."""
        return resolution_for_zoom(self.zoom)

    def set_zoom(self, zoom: float) -> None:
        self.zoom = self._clamp(zoom)

    def recenter(self, lon: float, lat: float) -> None:
        """Move the centre without changing the zoom."""
        self.center_lon = lon
        self.center_lat = lat

    def zoom_to(self, lon: float, lat: float, zoom: Optional[float] = None) -> None:
        self.recenter(lon, lat)
        if zoom is not None:
            self.set_zoom(zoom)

    def pixel_tolerance_to_meters(self, pixels: float) -> float:
        return pixels * self.resolution

    def snapshot(self) -> ViewState:
        return ViewState(
            center_lon=self.center_lon,
            center_lat=self.center_lat,
            zoom=self.zoom,
            resolution=self.resolution,
        )
