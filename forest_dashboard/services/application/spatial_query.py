"""
Application service: map click handling.

Decides per click whether the dashboard is inspecting a stand or running
a radius query, performs the matching lookup and pushes the outcome into
the popup. Only the most recently dispatched query may change state;
results of superseded queries are discarded.
"""
from enum import Enum
from typing import Optional
import logging

from forest_dashboard.config import Settings
from forest_dashboard.domain.models import (
    ErrorResult,
    GeoPoint,
    ListResult,
    QueryResult,
    RadiusMatch,
    RadiusResult,
    SingleResult,
    Stand,
    StandCandidate,
)
from forest_dashboard.infrastructure.errors import FetchError
from forest_dashboard.infrastructure.geoserver_client import GeoServerClient
from forest_dashboard.infrastructure.stand_api_client import StandAPIClient
from forest_dashboard.services.domain.layer_manager import LayerManager
from forest_dashboard.services.domain.map_view import MapView
from forest_dashboard.services.domain.popup_state import PopupState
from forest_dashboard.services.domain.stand_transform import transform_feature
from forest_dashboard.utils.geo_projection import lonlat_to_mercator
from forest_dashboard.utils.spatial_helpers import haversine_distance, reproject_geometry

logger = logging.getLogger(__name__)


class QueryMode(str, Enum):
    INSPECT = "inspect"
    RADIUS = "radius_query"


class SpatialQueryCoordinator:
    """
    Turns map clicks into query results.

    Inspect mode prefers a local hit-test of rendered markers and falls
    back to a map server probe. Radius mode stays active across clicks
    until it is explicitly exited.
    """

    def __init__(
        self,
        config: Settings,
        api_client: StandAPIClient,
        geoserver: GeoServerClient,
        layers: LayerManager,
        view: MapView,
        popup: PopupState,
    ):
        self.config = config
        self.api_client = api_client
        self.geoserver = geoserver
        self.layers = layers
        self.view = view
        self.popup = popup
        self.mode = QueryMode.INSPECT
        self.radius: float = config.default_radius
        self._generation = 0

    # ============================================================
    # Mode
    # ============================================================

    @property
    def radius_options(self) -> list[int]:
        return list(self.config.radius_options)

    def set_radius(self, radius: float) -> None:
        """Choose a preset or freeform radius in meters."""
        if radius <= 0:
            raise ValueError(f"Radius must be positive, got {radius}")
        self.radius = radius

    def enter_radius_mode(self, radius: Optional[float] = None) -> None:
        if radius is not None:
            self.set_radius(radius)
        self.mode = QueryMode.RADIUS
        logger.info(f"Radius query mode on ({self.radius} m)")

    def exit_radius_mode(self) -> None:
        self.mode = QueryMode.INSPECT
        logger.info("Radius query mode off")

    # ============================================================
    # Dispatch
    # ============================================================

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, token: int) -> bool:
        if token != self._generation:
            logger.debug(f"Discarding result of superseded query {token} (current {self._generation})")
            return False
        return True

    async def handle_click(self, lon: float, lat: float) -> Optional[QueryResult]:
        """
        Handle a map click at a geographic position.

        Args:
            lon: Click longitude
            lat: Click latitude

        Returns:
            The result presented, or None when nothing was found or the
            query was superseded
        """
        token = self._next_generation()
        position = GeoPoint(lon=lon, lat=lat)
        try:
            if self.mode == QueryMode.RADIUS:
                return await self._radius_query(token, position)
            return await self._inspect(token, position)
        except FetchError as e:
            logger.error(f"Query at ({lon:.5f}, {lat:.5f}) failed: {e.status_code} {e.endpoint} {e.message}")
            return self._fail(token, f"Query failed: {e.message}", position)
        except Exception:
            # Never leave the popup loading, then let the error surface
            self._fail(token, "Query failed: unexpected error", position)
            raise

    def _fail(self, token: int, message: str, position: Optional[GeoPoint]) -> Optional[ErrorResult]:
        if not self._is_current(token):
            return None
        self.popup.show_error(message, position)
        return self.popup.result

    # ============================================================
    # Inspect
    # ============================================================

    async def _inspect(self, token: int, position: GeoPoint) -> Optional[QueryResult]:
        x, y = lonlat_to_mercator(position.lon, position.lat)
        tolerance = self.view.pixel_tolerance_to_meters(self.config.hit_tolerance_px)

        stand = self.layers.hit_test(x, y, tolerance)
        if stand is not None:
            return await self._present_single(token, stand, position)

        if not self.layers.stands_visible:
            self.popup.close()
            return None

        self.popup.show_loading(position)
        buffer = self.geoserver.probe_buffer(self.view.resolution)
        features = await self.geoserver.probe_features_near((x, y), buffer)
        if not self._is_current(token):
            return None

        stands = []
        for feature in features:
            geographic = {**feature, "geometry": reproject_geometry(feature.get("geometry"))}
            candidate = transform_feature(geographic)
            if candidate is not None:
                stands.append(candidate)

        if not stands:
            self.popup.close()
            return None
        if len(stands) == 1:
            return await self._present_single(token, stands[0], position)

        result = ListResult(candidates=[
            StandCandidate(
                id=s.id,
                code=s.code,
                name=s.name,
                species=s.species,
                area=s.area,
                volume_per_ha=s.volume_per_ha,
            )
            for s in stands
        ])
        self.popup.show(result, position)
        return result

    async def _present_single(self, token: int, stand: Stand, position: GeoPoint) -> Optional[SingleResult]:
        if not self._is_current(token):
            return None
        result = SingleResult(
            stand=stand,
            total_volume=stand.total_volume,
            distance=haversine_distance(position.lon, position.lat, stand.center_lon, stand.center_lat),
        )
        self.popup.show(result, GeoPoint(lon=stand.center_lon, lat=stand.center_lat))
        self.view.recenter(stand.center_lon, stand.center_lat)
        await self.layers.highlight(stand)
        return result

    async def select_candidate(self, stand_id: str) -> Optional[QueryResult]:
        """
        Resolve one candidate of a list result into a single result.

        Uses the loaded marker when available, the stands API otherwise.
        """
        token = self._next_generation()
        stand = self.layers.find_marker(stand_id)
        position = self.popup.position
        try:
            if stand is None:
                stand = await self.api_client.get_stand(stand_id)
        except FetchError as e:
            logger.error(f"Loading stand {stand_id} failed: {e.message}")
            return self._fail(token, f"Query failed: {e.message}", position)
        return await self._present_single(
            token, stand, position or GeoPoint(lon=stand.center_lon, lat=stand.center_lat)
        )

    # ============================================================
    # Radius
    # ============================================================

    async def _radius_query(self, token: int, position: GeoPoint) -> Optional[RadiusResult]:
        radius = self.radius
        self.popup.show_loading(position)
        stands = await self.api_client.list_nearby(position.lon, position.lat, radius)
        if not self._is_current(token):
            return None

        matches = []
        for stand in stands:
            distance = haversine_distance(position.lon, position.lat, stand.center_lon, stand.center_lat)
            if distance <= radius:
                matches.append(RadiusMatch(stand=stand, distance=distance))
        if len(matches) < len(stands):
            logger.debug(f"Dropped {len(stands) - len(matches)} stands outside {radius} m")
        matches.sort(key=lambda m: m.distance)

        result = RadiusResult(
            center=position,
            radius=radius,
            stands=matches,
            total_area=sum(m.stand.area for m in matches),
            total_volume=sum(m.stand.total_volume for m in matches),
        )
        self.layers.draw_radius(position.lon, position.lat, radius)
        self.popup.show(result, position)
        logger.info(f"Radius query found {result.count} stands within {radius} m")
        return result
