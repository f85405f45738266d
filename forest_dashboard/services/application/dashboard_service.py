"""
Application service: the dashboard session.

Wires the gateway clients, map state and query coordinator together and
keeps the loaded stand collection. All derived figures are recomputed
from the filtered collection on demand.
"""
from typing import Any, List, Optional
import asyncio
import logging

from pydantic import BaseModel

from forest_dashboard.config import Settings, check_configuration
from forest_dashboard.domain.models import (
    RadiusResult,
    SpeciesStatistic,
    Stand,
    StandFilter,
    StandHistoryPoint,
)
from forest_dashboard.infrastructure.geoserver_client import GeoServerClient
from forest_dashboard.infrastructure.stand_api_client import StandAPIClient
from forest_dashboard.services.application.spatial_query import SpatialQueryCoordinator
from forest_dashboard.services.domain import export, statistics
from forest_dashboard.services.domain.layer_manager import LayerManager
from forest_dashboard.services.domain.map_view import MapView
from forest_dashboard.services.domain.popup_state import PopupState

logger = logging.getLogger(__name__)


class DashboardStatistics(BaseModel):
    """Chart-ready aggregates of the filtered stand collection."""
    summary: statistics.StandSummary
    species: list[statistics.GroupAggregate]
    origins: list[statistics.GroupAggregate]
    volume_distribution: list[statistics.Bucket]
    age_distribution: list[statistics.Bucket]
    density_distribution: list[statistics.Bucket]
    growth_projection: statistics.GrowthProjection
    species_options: list[str]


class DashboardContext:
    """
    One dashboard session.

    Owns every stateful component; nothing is kept in module globals, so
    tests and the HTTP app each build their own context.
    """

    def __init__(
        self,
        config: Settings,
        api_client: Optional[StandAPIClient] = None,
        geoserver: Optional[GeoServerClient] = None,
    ):
        """
        Initialize the session.

        Args:
            config: Application settings
            api_client: Stands API client; built from config when None
            geoserver: Map server client; built from config when None
        """
        self.config = config
        self.api_client = api_client or StandAPIClient(config)
        self.geoserver = geoserver or GeoServerClient(config)
        self.view = MapView(config)
        self.popup = PopupState(error_duration=config.error_popup_duration)
        self.layers = LayerManager(config, self.geoserver, self.api_client.list_stands)
        self.coordinator = SpatialQueryCoordinator(
            config,
            api_client=self.api_client,
            geoserver=self.geoserver,
            layers=self.layers,
            view=self.view,
            popup=self.popup,
        )
        self.stands: List[Stand] = []
        self.last_load_error: Optional[str] = None
        self._probe_task: Optional[asyncio.Task] = None

    # ============================================================
    # Lifecycle
    # ============================================================

    def startup(self) -> None:
        """
        Log configuration warnings and start the map server probe.

        The probe runs in the background; the dashboard is usable before
        it completes.
        """
        for warning in check_configuration(self.config):
            logger.warning(f"Configuration: {warning}")
        self._probe_task = asyncio.get_running_loop().create_task(self.probe_map_server())

    async def probe_map_server(self) -> bool:
        healthy = await self.geoserver.check_connectivity()
        self.layers.set_service_degraded(not healthy)
        if not healthy:
            logger.warning("Map server unreachable, stand polygons fall back to markers")
        return healthy

    async def shutdown(self) -> None:
        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
        self.popup.close()
        self.layers.close()
        await self.api_client.close()
        await self.geoserver.close()
        logger.info("Dashboard session closed")

    # ============================================================
    # Stands
    # ============================================================

    async def load_stands(self) -> List[Stand]:
        """
        Fetch the stand collection and refresh markers and heatmap.

        Raises:
            FetchError: If the stands API request fails
        """
        stands = await self.api_client.list_stands()
        self.stands = stands
        self.last_load_error = None
        self.layers.load_markers(stands)
        self.layers.load_heatmap(stands)
        logger.info(f"Loaded {len(stands)} stands")
        return stands

    def apply_filter(self, stand_filter: Optional[StandFilter]) -> List[Stand]:
        """
        Apply a filter to the map and the statistics.

        Args:
            stand_filter: New filter; None clears it

        Returns:
            The filtered collection
        """
        self.layers.apply_filter(stand_filter)
        return self.filtered_stands()

    @property
    def stand_filter(self) -> StandFilter:
        return self.layers.stand_filter

    def filtered_stands(self) -> List[Stand]:
        return [s for s in self.stands if self.stand_filter.matches(s)]

    def find_stand(self, stand_id: str) -> Optional[Stand]:
        for stand in self.stands:
            if stand.id == stand_id:
                return stand
        return None

    async def get_stand(self, stand_id: str) -> Stand:
        return self.find_stand(stand_id) or await self.api_client.get_stand(stand_id)

    async def stand_history(self, stand_id: str, years: int = 5) -> List[StandHistoryPoint]:
        return await self.api_client.stand_history(stand_id, years)

    async def species_statistics(self) -> List[SpeciesStatistic]:
        return await self.api_client.species_statistics()

    # ============================================================
    # Statistics
    # ============================================================

    def dashboard_statistics(self, start_year: Optional[int] = None) -> DashboardStatistics:
        stands = self.filtered_stands()
        return DashboardStatistics(
            summary=statistics.summarize(stands),
            species=statistics.species_breakdown(stands),
            origins=statistics.origin_breakdown(stands),
            volume_distribution=statistics.volume_distribution(stands),
            age_distribution=statistics.age_distribution(stands),
            density_distribution=statistics.density_distribution(stands),
            growth_projection=statistics.growth_projection(
                stands,
                years=self.config.projection_years,
                rate=self.config.annual_growth_rate,
                start_year=start_year,
            ),
            species_options=statistics.unique_species(self.stands),
        )

    # ============================================================
    # Export
    # ============================================================

    @property
    def radius_result(self) -> Optional[RadiusResult]:
        result = self.popup.result
        return result if isinstance(result, RadiusResult) else None

    def export_stands(self, fmt: str) -> str:
        """
        Serialize the filtered collection.

        Args:
            fmt: One of csv, json, geojson

        Raises:
            ValueError: For any other format
        """
        stands = self.filtered_stands()
        if fmt == "csv":
            return export.stands_to_csv(stands)
        if fmt == "json":
            return export.stands_to_json(stands)
        if fmt == "geojson":
            return export.stands_to_geojson(stands)
        raise ValueError(f"Unsupported export format: {fmt}")

    def export_radius_result(self) -> Optional[str]:
        """CSV of the live radius result, or None when none is shown."""
        result = self.radius_result
        if result is None:
            return None
        return export.radius_result_to_csv(result)

    def snapshot(self) -> dict[str, Any]:
        return {
            "view": self.view.snapshot().model_dump(),
            "mode": self.coordinator.mode.value,
            "radius": self.coordinator.radius,
            "radius_options": self.coordinator.radius_options,
            "popup": self.popup.snapshot(),
            **self.layers.snapshot(),
            "stand_count": len(self.stands),
            "filtered_count": len(self.filtered_stands()),
            "last_load_error": self.last_load_error,
        }
