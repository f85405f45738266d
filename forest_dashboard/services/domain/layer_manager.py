"""
Domain service: map layer state.

Owns the fixed layer set and translates high-level intents (toggle a
layer, filter stands, highlight a stand, draw a query radius) into layer
and source mutations. The WMS raster layer and the vector marker layer
are two renderings of one logical "stands" layer; while the map server
is degraded only the marker rendering is ever shown.
"""
from typing import Any, Awaitable, Callable, Literal, Optional, Union
import asyncio
import logging

from pydantic import BaseModel, Field

from forest_dashboard.config import Settings
from forest_dashboard.domain.models import LayerState, Stand, StandFilter
from forest_dashboard.infrastructure.errors import FetchError
from forest_dashboard.infrastructure.geoserver_client import GeoServerClient
from forest_dashboard.services.domain.timers import TimerGroup, TransientSlot
from forest_dashboard.utils.geo_projection import lonlat_to_mercator
from forest_dashboard.utils.spatial_helpers import build_kdtree

logger = logging.getLogger(__name__)

STANDS = "stands"
STAND_MARKERS = "stand_markers"
HEATMAP = "heatmap"
HIGHLIGHT = "highlight"

HIGHLIGHT_STYLE = {"stroke": "#FF5722", "width": 3, "fill": "rgba(255, 87, 34, 0.1)"}
RADIUS_STYLE = {"stroke": "#388E3C", "width": 2, "line_dash": [5, 5], "fill": "rgba(56, 142, 60, 0.1)"}

StandLoader = Callable[[], Awaitable[list[Stand]]]


def default_layers() -> dict[str, LayerState]:
    layers = [
        LayerState(name="base", title="OpenStreetMap", kind="base", visible=True, z_index=1),
        LayerState(name="satellite", title="Satellite imagery", kind="xyz", z_index=2),
        LayerState(name="terrain", title="Terrain", kind="xyz", z_index=3),
        LayerState(name=HEATMAP, title="Volume heatmap", kind="heatmap", opacity=0.8, z_index=5),
        LayerState(name=STANDS, title="Stand polygons", kind="wms", visible=True, opacity=0.9, z_index=10),
        LayerState(name=STAND_MARKERS, title="Stand markers", kind="vector", visible=True, opacity=0.9, z_index=11),
        LayerState(name=HIGHLIGHT, title="Highlight", kind="overlay", visible=True, z_index=20),
    ]
    return {layer.name: layer for layer in layers}


def hex_to_rgba(hex_color: str, alpha: float) -> str:
    r = int(hex_color[1:3], 16)
    g = int(hex_color[3:5], 16)
    b = int(hex_color[5:7], 16)
    return f"rgba({r}, {g}, {b}, {alpha})"


class OverlayFeature(BaseModel):
    """A transient decoration on the highlight layer."""
    kind: Literal["highlight", "radius"]
    stand_id: Optional[str] = None
    geometry: dict[str, Any]
    radius: Optional[float] = None
    style: dict[str, Any] = Field(default_factory=dict)


class HeatmapPoint(BaseModel):
    stand_id: str
    lon: float
    lat: float
    weight: float


class LayerManager:
    """Layer visibility, filtering and transient overlays."""

    def __init__(
        self,
        config: Settings,
        geoserver: GeoServerClient,
        stand_loader: StandLoader,
    ):
        """
        Initialize the layer set.

        Args:
            config: Application settings (durations, colours)
            geoserver: Map server client for WMS params and geometry lookups
            stand_loader: Coroutine returning stands for the heatmap
        """
        self.config = config
        self.geoserver = geoserver
        self.stand_loader = stand_loader
        self.layers = default_layers()
        self.service_degraded = False
        self.stand_filter = StandFilter()
        self.wms_params = geoserver.wms_params()
        self.overlays: list[OverlayFeature] = []

        self._stands_visible = True
        self._stands_opacity = self.layers[STANDS].opacity
        self._markers: list[Stand] = []
        self._marker_index = None
        self._heatmap: list[HeatmapPoint] = []
        self._heatmap_lock = asyncio.Lock()
        self._highlight_slot = TransientSlot("highlight")
        self._highlight_seq = 0
        self._radius_timers = TimerGroup()

    # ============================================================
    # Visibility
    # ============================================================

    def get_layer(self, name: str) -> LayerState:
        if name not in self.layers:
            raise KeyError(f"Unknown layer: {name}")
        return self.layers[name]

    @property
    def stands_visible(self) -> bool:
        """Logical visibility of the stands layer, independent of map server health."""
        return self._stands_visible

    def _sync_stand_layers(self) -> None:
        raster = self.layers[STANDS]
        markers = self.layers[STAND_MARKERS]
        markers.visible = self._stands_visible
        markers.opacity = self._stands_opacity
        # A degraded raster keeps its last opacity until the map server is back
        if not self.service_degraded:
            raster.opacity = self._stands_opacity
        raster.visible = self._stands_visible and not self.service_degraded

    async def toggle_layer(self, name: str, visible: Optional[bool] = None) -> bool:
        """
        Show, hide or flip a layer.

        Enabling the heatmap populates it on first use.

        Args:
            name: Layer name
            visible: Target visibility; flips the current state when None

        Returns:
            The new visibility
        """
        layer = self.get_layer(name)
        if name == STANDS:
            self._stands_visible = (not self._stands_visible) if visible is None else visible
            self._sync_stand_layers()
            logger.info(f"Stands layer visible={self._stands_visible} (degraded={self.service_degraded})")
            return self._stands_visible

        layer.visible = (not layer.visible) if visible is None else visible
        logger.info(f"{name} layer visible={layer.visible}")
        if name == HEATMAP and layer.visible:
            await self.ensure_heatmap()
        return layer.visible

    def set_opacity(self, name: str, opacity: float) -> None:
        if not 0 <= opacity <= 1:
            raise ValueError(f"Opacity must be within [0, 1], got {opacity}")
        layer = self.get_layer(name)
        if name == STANDS:
            self._stands_opacity = opacity
            self._sync_stand_layers()
            return
        layer.opacity = opacity

    def set_service_degraded(self, degraded: bool) -> None:
        """Record the map server health and re-derive the stand renderings."""
        if degraded != self.service_degraded:
            logger.warning(f"Map server degraded={degraded}")
        self.service_degraded = degraded
        self._sync_stand_layers()

    # ============================================================
    # Heatmap
    # ============================================================

    def load_heatmap(self, stands: list[Stand]) -> int:
        self._heatmap = [
            HeatmapPoint(
                stand_id=stand.id,
                lon=stand.center_lon,
                lat=stand.center_lat,
                weight=min(stand.volume_per_ha / 200, 1.0),
            )
            for stand in stands
        ]
        return len(self._heatmap)

    async def ensure_heatmap(self) -> bool:
        """
        Populate the heatmap source if it is empty.

        Concurrent callers share one fetch. A failed fetch leaves the
        source empty so the next enable tries again.

        Returns:
            True if a fetch was performed
        """
        if self._heatmap:
            return False
        async with self._heatmap_lock:
            if self._heatmap:
                return False
            try:
                stands = await self.stand_loader()
            except FetchError as e:
                logger.error(f"Heatmap refresh failed: {e}")
                return True
            count = self.load_heatmap(stands)
            logger.info(f"Heatmap loaded {count} points")
            return True

    @property
    def heatmap_points(self) -> list[HeatmapPoint]:
        return list(self._heatmap)

    # ============================================================
    # Markers and filtering
    # ============================================================

    def load_markers(self, stands: list[Stand]) -> None:
        """Replace the vector marker source and rebuild its spatial index."""
        self._markers = list(stands)
        if self._markers:
            self._marker_index = build_kdtree(
                [lonlat_to_mercator(s.center_lon, s.center_lat) for s in self._markers]
            )
        else:
            self._marker_index = None

    @property
    def markers(self) -> list[Stand]:
        return list(self._markers)

    def apply_filter(self, stand_filter: Optional[StandFilter]) -> Optional[str]:
        """
        Apply an attribute filter to both stand renderings.

        Args:
            stand_filter: New filter; None clears it

        Returns:
            The CQL fragment now sent with tile requests
        """
        self.stand_filter = stand_filter or StandFilter()
        cql = self.stand_filter.to_cql()
        self.wms_params = self.geoserver.wms_params(cql)
        logger.info(f"Applied stand filter: {cql or '<none>'}")
        return cql

    def is_marker_visible(self, stand: Stand) -> bool:
        return self.stand_filter.matches(stand)

    def visible_markers(self) -> list[Stand]:
        return [s for s in self._markers if self.is_marker_visible(s)]

    def marker_style(self, stand: Stand) -> dict[str, Any]:
        color = self.config.species_colors.get(stand.species, self.config.fallback_color)
        opacity = max(0.4, min(0.9, stand.volume_per_ha / 300))
        return {
            "fill": hex_to_rgba(color, round(opacity, 2)),
            "stroke": color,
            "width": 2,
            "label": stand.code,
        }

    def hit_test(self, x: float, y: float, tolerance: float) -> Optional[Stand]:
        """
        Find the nearest rendered marker around a map point.

        Args:
            x: Map x in EPSG:3857
            y: Map y in EPSG:3857
            tolerance: Search radius in meters

        Returns:
            Nearest visible stand within tolerance, or None
        """
        if self._marker_index is None or not self.layers[STAND_MARKERS].visible:
            return None
        hits = self._marker_index.query_ball_point((x, y), tolerance)
        best = None
        best_distance = None
        for index in hits:
            stand = self._markers[index]
            if not self.is_marker_visible(stand):
                continue
            mx, my = self._marker_index.data[index]
            distance = (mx - x) ** 2 + (my - y) ** 2
            if best is None or distance < best_distance:
                best, best_distance = stand, distance
        return best

    def find_marker(self, stand_id: str) -> Optional[Stand]:
        for stand in self._markers:
            if stand.id == stand_id:
                return stand
        return None

    # ============================================================
    # Overlays
    # ============================================================

    def _remove_overlay(self, overlay: OverlayFeature) -> None:
        self.overlays = [o for o in self.overlays if o is not overlay]

    def clear_highlight(self) -> None:
        self._highlight_slot.cancel()
        self.overlays = [o for o in self.overlays if o.kind != "highlight"]

    async def _resolve_geometry(self, target: Union[str, Stand, dict]) -> tuple[Optional[str], Optional[dict]]:
        if isinstance(target, Stand):
            stand = target
        elif isinstance(target, dict):
            props = target.get("properties") or {}
            return (str(target.get("id") or props.get("id") or "") or None, target.get("geometry"))
        else:
            stand = self.find_marker(str(target))
            if stand is None or stand.geometry is None:
                try:
                    collection = await self.geoserver.fetch_stand_geometry(str(target))
                    features = collection.get("features") or []
                    if features and features[0].get("geometry"):
                        return (str(target), features[0]["geometry"])
                except FetchError as e:
                    logger.error(f"Highlight geometry lookup failed: {e}")
                if stand is None:
                    return (str(target), None)

        if stand.geometry:
            return (stand.id, stand.geometry)
        return (stand.id, {"type": "Point", "coordinates": [stand.center_lon, stand.center_lat]})

    async def highlight(self, target: Union[str, Stand, dict]) -> Optional[OverlayFeature]:
        """
        Transiently highlight a stand.

        Clears any previous highlight; the new one is removed after the
        configured duration unless a newer highlight replaces it first.

        Args:
            target: Stand id, Stand, or GeoJSON feature

        Returns:
            The overlay added, or None if no geometry could be resolved
            or a newer highlight superseded this one
        """
        self._highlight_seq += 1
        seq = self._highlight_seq
        self.clear_highlight()

        stand_id, geometry = await self._resolve_geometry(target)
        if seq != self._highlight_seq:
            return None
        if not geometry:
            logger.warning(f"Nothing to highlight for {stand_id}")
            return None

        overlay = OverlayFeature(kind="highlight", stand_id=stand_id, geometry=geometry, style=HIGHLIGHT_STYLE)
        self.overlays.append(overlay)
        self._highlight_slot.schedule(
            self.config.highlight_duration,
            lambda: self._remove_overlay(overlay),
        )
        return overlay

    def draw_radius(self, lon: float, lat: float, radius: float) -> OverlayFeature:
        """Add a dashed query circle, removed after the configured duration."""
        overlay = OverlayFeature(
            kind="radius",
            geometry={"type": "Point", "coordinates": [lon, lat]},
            radius=radius,
            style=RADIUS_STYLE,
        )
        self.overlays.append(overlay)
        self._radius_timers.schedule(
            self.config.radius_circle_duration,
            lambda: self._remove_overlay(overlay),
        )
        return overlay

    # ============================================================
    # Lifecycle
    # ============================================================

    def snapshot(self) -> dict[str, Any]:
        return {
            "layers": sorted(
                (layer.model_dump() for layer in self.layers.values()),
                key=lambda layer: layer["z_index"],
            ),
            "service_degraded": self.service_degraded,
            "filter": self.stand_filter.model_dump(),
            "cql_filter": self.stand_filter.to_cql(),
            "wms_params": self.wms_params,
            "overlays": [o.model_dump() for o in self.overlays],
            "visible_marker_count": len(self.visible_markers()),
            "heatmap_point_count": len(self._heatmap),
        }

    def close(self) -> None:
        self._highlight_slot.cancel()
        self._radius_timers.cancel_all()
        self.overlays = []
