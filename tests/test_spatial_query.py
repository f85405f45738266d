"""
Unit tests for the spatial query coordinator.

Tests cover:
- Inspect mode fast path via marker hit-testing
- Map server probe fallback with single, list and empty results
- Radius query filtering, ordering and totals
- Supersession of slow queries
- Error presentation and auto-close
"""
import asyncio

import pytest

from forest_dashboard.domain.models import ListResult, RadiusResult, SingleResult
from forest_dashboard.infrastructure.errors import FetchError
from forest_dashboard.services.application.spatial_query import QueryMode
from forest_dashboard.services.domain.layer_manager import STANDS

from tests.conftest import CENTER_LAT, CENTER_LON, probe_feature


# ============================================================
# Inspect Mode Tests
# ============================================================

class TestInspect:
    """Tests for clicks in inspect mode."""

    @pytest.mark.asyncio
    async def test_marker_hit_skips_map_server(self, loaded_dashboard, mock_geoserver):
        """A click on a rendered marker resolves locally."""
        result = await loaded_dashboard.coordinator.handle_click(118.8002, 32.0701)

        assert isinstance(result, SingleResult)
        assert result.stand.id == "1"
        assert result.total_volume == 1200
        assert result.distance < 50
        mock_geoserver.probe_features_near.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_result_recenters_and_highlights(self, loaded_dashboard):
        view = loaded_dashboard.view
        view.set_zoom(14)

        await loaded_dashboard.coordinator.handle_click(118.8052, 32.0721)

        assert (view.center_lon, view.center_lat) == (118.805, 32.072)
        assert view.zoom == 14
        assert [o.stand_id for o in loaded_dashboard.layers.overlays] == ["2"]
        assert loaded_dashboard.popup.result_type == "single"

    @pytest.mark.asyncio
    async def test_probe_single_feature(self, dashboard, mock_geoserver):
        mock_geoserver.probe_features_near.return_value = [probe_feature("77", 118.83, 32.09)]

        result = await dashboard.coordinator.handle_click(118.8301, 32.0901)

        assert isinstance(result, SingleResult)
        assert result.stand.id == "77"
        assert result.stand.center_lon == pytest.approx(118.83, abs=1e-6)
        assert result.stand.center_lat == pytest.approx(32.09, abs=1e-6)
        assert dashboard.layers.overlays[0].geometry["type"] == "Polygon"

    @pytest.mark.asyncio
    async def test_probe_uses_zoom_scaled_buffer(self, dashboard, mock_geoserver):
        await dashboard.coordinator.handle_click(CENTER_LON, CENTER_LAT)

        point, buffer = mock_geoserver.probe_features_near.await_args.args
        assert buffer == pytest.approx(50 * dashboard.view.resolution)
        assert point[0] == pytest.approx(13224699, rel=1e-4)

    @pytest.mark.asyncio
    async def test_probe_multiple_features(self, dashboard, mock_geoserver):
        mock_geoserver.probe_features_near.return_value = [
            probe_feature("77", 118.83, 32.09),
            probe_feature("78", 118.831, 32.09, species="Fir", volume=60),
        ]

        result = await dashboard.coordinator.handle_click(118.8301, 32.0901)

        assert isinstance(result, ListResult)
        assert [c.id for c in result.candidates] == ["77", "78"]
        assert result.candidates[1].species == "Fir"
        assert dashboard.layers.overlays == []

    @pytest.mark.asyncio
    async def test_probe_nothing_found_closes_popup(self, dashboard, mock_geoserver):
        result = await dashboard.coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert result is None
        assert not dashboard.popup.visible

    @pytest.mark.asyncio
    async def test_hidden_stands_layer_closes_popup(self, dashboard, mock_geoserver):
        await dashboard.layers.toggle_layer(STANDS, visible=False)

        result = await dashboard.coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert result is None
        assert not dashboard.popup.visible
        mock_geoserver.probe_features_near.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_probe_failure_shows_transient_error(self, dashboard, mock_geoserver, test_settings):
        mock_geoserver.probe_features_near.side_effect = FetchError(503, "Map server request error", "/wfs")

        result = await dashboard.coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert result.type == "error"
        assert result.message.startswith("Query failed")
        await asyncio.sleep(test_settings.error_popup_duration + 0.05)
        assert not dashboard.popup.visible

    @pytest.mark.asyncio
    async def test_select_candidate(self, loaded_dashboard):
        result = await loaded_dashboard.coordinator.select_candidate("10")

        assert isinstance(result, SingleResult)
        assert result.stand.name == "Stand 10"

    @pytest.mark.asyncio
    async def test_select_candidate_from_api(self, dashboard, mock_api_client, sample_stands):
        mock_api_client.get_stand.return_value = sample_stands[6]

        result = await dashboard.coordinator.select_candidate("7")

        mock_api_client.get_stand.assert_awaited_once_with("7")
        assert result.stand.species == "Camphor"


# ============================================================
# Radius Mode Tests
# ============================================================

class TestRadiusQuery:
    """Tests for clicks in radius query mode."""

    @pytest.mark.asyncio
    async def test_radius_query(self, loaded_dashboard, mock_api_client, sample_stands):
        """Stands beyond the radius are dropped and the rest sorted by distance."""
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode(1000)
        by_id = {s.id: s for s in sample_stands}
        mock_api_client.list_nearby.return_value = [by_id["3"], by_id["2"], by_id["1"], by_id["5"]]

        result = await coordinator.handle_click(CENTER_LON, CENTER_LAT)

        mock_api_client.list_nearby.assert_awaited_once_with(CENTER_LON, CENTER_LAT, 1000)
        assert isinstance(result, RadiusResult)
        assert [m.stand.id for m in result.stands] == ["1", "2"]
        assert result.stands[0].distance == pytest.approx(0)
        assert 450 < result.stands[1].distance < 600
        assert result.count == 2
        assert result.total_area == pytest.approx(30)
        assert result.total_volume == pytest.approx(4200)

    @pytest.mark.asyncio
    async def test_radius_mode_persists_and_draws_circle(self, loaded_dashboard, mock_api_client):
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode(2000)

        await coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert coordinator.mode == QueryMode.RADIUS
        circles = [o for o in loaded_dashboard.layers.overlays if o.kind == "radius"]
        assert circles[0].radius == 2000

        coordinator.exit_radius_mode()
        assert coordinator.mode == QueryMode.INSPECT

    @pytest.mark.asyncio
    async def test_empty_radius_result(self, loaded_dashboard):
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode()

        result = await coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert result.count == 0
        assert result.radius == 1000
        assert loaded_dashboard.popup.result_type == "radius"

    def test_invalid_radius(self, dashboard):
        with pytest.raises(ValueError):
            dashboard.coordinator.set_radius(0)

    @pytest.mark.asyncio
    async def test_radius_failure(self, loaded_dashboard, mock_api_client):
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode()
        mock_api_client.list_nearby.side_effect = FetchError(500, "API request failed: 500 - boom", "/stands/nearby")

        result = await coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert result.type == "error"
        assert "boom" in result.message

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, loaded_dashboard, mock_api_client):
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode()
        mock_api_client.list_nearby.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await coordinator.handle_click(CENTER_LON, CENTER_LAT)

        assert loaded_dashboard.popup.result_type == "error"


# ============================================================
# Supersession Tests
# ============================================================

class TestSupersession:
    """Only the latest query may change the popup."""

    @pytest.mark.asyncio
    async def test_slow_query_is_discarded(self, loaded_dashboard, mock_api_client, sample_stands):
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode(1000)

        async def nearby(lon, lat, radius):
            if lon == CENTER_LON:
                await asyncio.sleep(0.05)
                return [sample_stands[0]]
            return [sample_stands[9]]

        mock_api_client.list_nearby.side_effect = nearby

        slow, fast = await asyncio.gather(
            coordinator.handle_click(CENTER_LON, CENTER_LAT),
            coordinator.handle_click(118.81, 32.075),
        )

        assert slow is None
        assert [m.stand.id for m in fast.stands] == ["10"]
        assert loaded_dashboard.popup.result == fast

    @pytest.mark.asyncio
    async def test_stale_failure_is_not_shown(self, loaded_dashboard, mock_api_client, sample_stands):
        coordinator = loaded_dashboard.coordinator
        coordinator.enter_radius_mode(1000)

        async def nearby(lon, lat, radius):
            if lon == CENTER_LON:
                await asyncio.sleep(0.05)
                raise FetchError(503, "timeout")
            return [sample_stands[9]]

        mock_api_client.list_nearby.side_effect = nearby

        slow, fast = await asyncio.gather(
            coordinator.handle_click(CENTER_LON, CENTER_LAT),
            coordinator.handle_click(118.81, 32.075),
        )

        assert slow is None
        assert loaded_dashboard.popup.result_type == "radius"
