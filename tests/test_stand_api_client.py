"""
Unit tests for the stands API client.

Tests cover:
- Successful API responses and record transform
- Retry logic on transport errors
- No retry on HTTP error statuses
- Async context manager
- Admin gating of write operations
"""
import pytest
import httpx
import respx

from forest_dashboard.config import Settings
from forest_dashboard.domain.models import StandFilter
from forest_dashboard.infrastructure.errors import FetchError
from forest_dashboard.infrastructure.stand_api_client import StandAPIClient

from tests.conftest import STANDS_API_URL


# ============================================================
# Initialization Tests
# ============================================================

class TestAPIClientInitialization:
    """Tests for API client initialization."""

    def test_client_initialization(self, test_settings):
        """Client should initialize with correct configuration."""
        client = StandAPIClient(test_settings)

        assert client.base_url == STANDS_API_URL
        assert client.client is not None

    def test_trailing_slash_is_stripped(self):
        client = StandAPIClient(Settings(stands_api_base_url="http://stands.test/api/"))

        assert client.base_url == "http://stands.test/api"


# ============================================================
# Async Context Manager Tests
# ============================================================

class TestAsyncContextManager:
    """Tests for async context manager functionality."""

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, test_settings):
        async with StandAPIClient(test_settings) as client:
            assert isinstance(client, StandAPIClient)

        assert client.client.is_closed


# ============================================================
# Read Operation Tests
# ============================================================

class TestReadOperations:
    """Tests for read endpoints."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_stands_transforms_records(self, stand_api_client, raw_stand_records):
        respx.get(f"{STANDS_API_URL}/stands").mock(
            return_value=httpx.Response(200, json=raw_stand_records)
        )

        stands = await stand_api_client.list_stands()

        assert [s.id for s in stands] == ["1", "2"]
        assert stands[0].total_volume == 1200

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_stands_non_list_payload(self, stand_api_client):
        respx.get(f"{STANDS_API_URL}/stands").mock(
            return_value=httpx.Response(200, json={"message": "maintenance"})
        )

        assert await stand_api_client.list_stands() == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_stand(self, stand_api_client):
        respx.get(f"{STANDS_API_URL}/stands/17").mock(
            return_value=httpx.Response(200, json={"id": 17, "dominantSpecies": "Fir"})
        )

        stand = await stand_api_client.get_stand("17")

        assert stand.id == "17"
        assert stand.species == "Fir"

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_stand_unusable_record(self, stand_api_client):
        respx.get(f"{STANDS_API_URL}/stands/17").mock(
            return_value=httpx.Response(200, json={"standName": "no id"})
        )

        with pytest.raises(FetchError) as exc_info:
            await stand_api_client.get_stand("17")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @respx.mock
    async def test_nearby_query_parameters(self, stand_api_client):
        route = respx.get(f"{STANDS_API_URL}/stands/nearby").mock(
            return_value=httpx.Response(200, json=[{"id": 1}])
        )

        stands = await stand_api_client.list_nearby(118.8, 32.07, 1000)

        assert len(stands) == 1
        params = route.calls.last.request.url.params
        assert params["lon"] == "118.8"
        assert params["lat"] == "32.07"
        assert params["radiusMeters"] == "1000"

    @pytest.mark.asyncio
    @respx.mock
    async def test_species_statistics_colours(self, stand_api_client):
        respx.get(f"{STANDS_API_URL}/stands/statistics/species").mock(
            return_value=httpx.Response(200, json=[
                {"species": "Pine", "standCount": 1},
                {"species": "Larch", "standCount": 1},
            ])
        )

        stats = await stand_api_client.species_statistics()

        assert stats[0].color == "#795548"
        assert stats[1].color.startswith("#")
        assert stats[0].percentage == 50.0

    @pytest.mark.asyncio
    @respx.mock
    async def test_stand_history(self, stand_api_client):
        route = respx.get(f"{STANDS_API_URL}/stands/3/history").mock(
            return_value=httpx.Response(200, json=[{"year": 2022, "volumePerHa": 90}])
        )

        history = await stand_api_client.stand_history("3", years=3)

        assert history[0].year == 2022
        assert route.calls.last.request.url.params["years"] == "3"

    @pytest.mark.asyncio
    @respx.mock
    async def test_export_forwards_filter(self, stand_api_client):
        route = respx.get(f"{STANDS_API_URL}/stands/export").mock(
            return_value=httpx.Response(200, content=b"id,name\n1,a\n")
        )

        content = await stand_api_client.export_stands("csv", StandFilter(species="Pine", min_volume=100))

        assert content == b"id,name\n1,a\n"
        params = route.calls.last.request.url.params
        assert params["format"] == "csv"
        assert params["species"] == "Pine"
        assert params["minVolume"] == "100.0"

    @pytest.mark.asyncio
    async def test_export_rejects_unknown_format(self, stand_api_client):
        with pytest.raises(ValueError):
            await stand_api_client.export_stands("pdf")


# ============================================================
# Error Handling Tests
# ============================================================

class TestErrorHandling:
    """Tests for status and transport failures."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_is_not_retried(self, stand_api_client):
        """A non-2xx status should fail immediately."""
        route = respx.get(f"{STANDS_API_URL}/stands").mock(
            return_value=httpx.Response(500, text="boom")
        )

        with pytest.raises(FetchError) as exc_info:
            await stand_api_client.list_stands()

        assert exc_info.value.status_code == 500
        assert "boom" in exc_info.value.message
        assert exc_info.value.endpoint == "/stands"
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_found(self, stand_api_client):
        respx.get(f"{STANDS_API_URL}/stands/99").mock(return_value=httpx.Response(404))

        with pytest.raises(FetchError) as exc_info:
            await stand_api_client.get_stand("99")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_retried_then_succeeds(self, stand_api_client):
        route = respx.get(f"{STANDS_API_URL}/stands").mock(
            side_effect=[
                httpx.ConnectError("refused"),
                httpx.Response(200, json=[{"id": 1}]),
            ]
        )

        stands = await stand_api_client.list_stands()

        assert len(stands) == 1
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_exhausts_retries(self, stand_api_client, test_settings):
        route = respx.get(f"{STANDS_API_URL}/stands").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(FetchError) as exc_info:
            await stand_api_client.list_stands()

        assert exc_info.value.status_code == 503
        assert route.call_count == test_settings.max_retry_attempts

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json(self, stand_api_client):
        respx.get(f"{STANDS_API_URL}/stands").mock(
            return_value=httpx.Response(200, text="<html>oops</html>")
        )

        with pytest.raises(FetchError) as exc_info:
            await stand_api_client.list_stands()

        assert exc_info.value.status_code == 502


# ============================================================
# Admin Operation Tests
# ============================================================

class TestAdminOperations:
    """Tests for write passthroughs."""

    @pytest.mark.asyncio
    async def test_writes_require_admin(self, stand_api_client):
        with pytest.raises(FetchError) as exc_info:
            await stand_api_client.create_stand({"standName": "new"})

        assert exc_info.value.status_code == 403

        with pytest.raises(FetchError):
            await stand_api_client.delete_stand("1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_with_admin(self, test_settings):
        settings = test_settings.model_copy(update={"admin_enabled": True})
        route = respx.put(f"{STANDS_API_URL}/stands/5").mock(
            return_value=httpx.Response(200, json={"id": 5})
        )

        async with StandAPIClient(settings) as client:
            result = await client.update_stand("5", {"standName": "renamed"})

        assert result == {"id": 5}
        assert route.call_count == 1
