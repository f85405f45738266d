"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Fast settings (short transient durations, no retry waits)
- A sample stand collection around the default map centre
- Raw backend records and map server features
- Mock gateway clients and a dashboard session built on them
- FastAPI test client
"""
import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from forest_dashboard.config import Settings
from forest_dashboard.domain.models import Stand
from forest_dashboard.infrastructure.geoserver_client import GeoServerClient
from forest_dashboard.infrastructure.stand_api_client import StandAPIClient
from forest_dashboard.services.application.dashboard_service import DashboardContext
from forest_dashboard.utils.geo_projection import lonlat_to_mercator


STANDS_API_URL = "http://stands.test/api"
GEOSERVER_URL = "http://geoserver.test/geoserver"

CENTER_LON = 118.80
CENTER_LAT = 32.07


# ============================================================
# Settings Fixtures
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with short transient durations and immediate retries."""
    return Settings(
        stands_api_base_url=STANDS_API_URL,
        geoserver_url=GEOSERVER_URL,
        max_retry_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        highlight_duration=0.1,
        radius_circle_duration=0.1,
        error_popup_duration=0.05,
    )


# ============================================================
# Sample Data Fixtures
# ============================================================

def make_stand(stand_id, species, origin, volume, area, age, density, lon, lat) -> Stand:
    return Stand(
        id=stand_id,
        code=f"XB-{stand_id}",
        name=f"Stand {stand_id}",
        species=species,
        origin=origin,
        volume_per_ha=volume,
        area=area,
        age=age,
        canopy_density=density,
        center_lon=lon,
        center_lat=lat,
    )


@pytest.fixture
def sample_stands() -> list[Stand]:
    """
    Ten stands around the default centre.

    Three of them are Pine with at least 100 m³/ha.
    """
    return [
        make_stand("1", "Pine", "planted", 120, 10, 15, 0.6, 118.800, 32.070),
        make_stand("2", "Pine", "natural", 150, 20, 35, 0.8, 118.805, 32.072),
        make_stand("3", "Pine", "planted", 210, 5, 60, 0.75, 118.790, 32.065),
        make_stand("4", "Pine", "planted", 80, 8, 8, 0.1, 118.830, 32.090),
        make_stand("5", "Fir", "planted", 45, 12, 5, 0.15, 118.820, 32.080),
        make_stand("6", "Fir", "natural", 100, 15, 25, 0.5, 118.850, 32.100),
        make_stand("7", "Camphor", "natural", 175, 7, 40, 0.9, 118.760, 32.050),
        make_stand("8", "Sweetgum", "coppice", 60, 9, 12, 0.3, 118.900, 32.120),
        make_stand("9", "Bamboo", "planted", 30, 4, 3, 0.65, 118.700, 32.000),
        make_stand("10", "Schima", "aerial-seeded", 130, 11, 52, 0.2, 118.810, 32.075),
    ]


@pytest.fixture
def raw_stand_records() -> list[dict]:
    """Stand records as the REST API returns them, with one unusable record."""
    return [
        {
            "id": 1,
            "xiaoBanCode": "XB-1",
            "standName": "North ridge",
            "dominantSpecies": "Pine",
            "origin": "人工",
            "areaHa": 10,
            "volumePerHa": 120,
            "standAge": 15,
            "canopyDensity": 60,
            "centerLon": 118.8,
            "centerLat": 32.07,
            "totalVolume": 99999,
        },
        {
            "zoneId": "2",
            "dominant_species": "Fir",
            "area_ha": "12.5",
            "volume_per_ha": None,
            "center_lon": 118.82,
            "center_lat": 32.08,
        },
        {"standName": "No identifier"},
    ]


def mercator_square(lon: float, lat: float, half_size: float = 100.0) -> dict:
    """GeoJSON polygon in EPSG:3857 centred on a lon/lat point."""
    x, y = lonlat_to_mercator(lon, lat)
    ring = [
        [x - half_size, y - half_size],
        [x + half_size, y - half_size],
        [x + half_size, y + half_size],
        [x - half_size, y + half_size],
        [x - half_size, y - half_size],
    ]
    return {"type": "Polygon", "coordinates": [ring]}


def probe_feature(zone_id: str, lon: float, lat: float, species: str = "Pine", volume: float = 120) -> dict:
    """A stand feature as returned by a probe query (map coordinates, no centre attributes)."""
    return {
        "type": "Feature",
        "id": f"forest_stand.{zone_id}",
        "properties": {
            "zone_id": zone_id,
            "xiao_ban_code": f"XB-{zone_id}",
            "stand_name": f"Stand {zone_id}",
            "dominant_species": species,
            "volume_per_ha": volume,
            "area_ha": 4,
        },
        "geometry": mercator_square(lon, lat),
    }


# ============================================================
# Mock Client Fixtures
# ============================================================

@pytest.fixture
def mock_api_client(sample_stands):
    """Mock stands API client."""
    mock_client = AsyncMock(spec=StandAPIClient)
    mock_client.list_stands.return_value = sample_stands
    mock_client.list_nearby.return_value = []
    mock_client.species_statistics.return_value = []
    mock_client.stand_history.return_value = []
    return mock_client


@pytest.fixture
def mock_geoserver(test_settings):
    """Mock map server client with real buffer and WMS parameter rules."""
    real = GeoServerClient(test_settings)
    mock_client = AsyncMock(spec=GeoServerClient)
    mock_client.probe_buffer.side_effect = real.probe_buffer
    mock_client.wms_params.side_effect = real.wms_params
    mock_client.probe_features_near.return_value = []
    mock_client.fetch_stand_geometry.return_value = {"type": "FeatureCollection", "features": []}
    mock_client.check_connectivity.return_value = True
    return mock_client


@pytest.fixture
def dashboard(test_settings, mock_api_client, mock_geoserver) -> DashboardContext:
    """Dashboard session on mocked gateway clients."""
    return DashboardContext(test_settings, api_client=mock_api_client, geoserver=mock_geoserver)


@pytest.fixture
def loaded_dashboard(dashboard, sample_stands) -> DashboardContext:
    """Dashboard session with the sample stands loaded as markers."""
    dashboard.stands = list(sample_stands)
    dashboard.layers.load_markers(sample_stands)
    dashboard.layers.load_heatmap(sample_stands)
    return dashboard


# ============================================================
# Real Client Fixtures
# ============================================================

@pytest.fixture
async def stand_api_client(test_settings) -> AsyncGenerator[StandAPIClient, None]:
    async with StandAPIClient(test_settings) as client:
        yield client


@pytest.fixture
async def geoserver_client(test_settings) -> AsyncGenerator[GeoServerClient, None]:
    async with GeoServerClient(test_settings) as client:
        yield client


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client(loaded_dashboard) -> TestClient:
    """
    Synchronous test client bound to the loaded dashboard session.

    The lifespan is not run, so no real upstream is contacted.
    """
    from forest_dashboard.api.dependencies import get_dashboard
    from forest_dashboard.main import app

    app.dependency_overrides[get_dashboard] = lambda: loaded_dashboard
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
