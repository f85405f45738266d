"""
Infrastructure layer: Stands REST API client with retry logic.
"""
from typing import Any, Dict, List, Optional
import logging

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from forest_dashboard.config import Settings, settings as default_settings
from forest_dashboard.domain.models import (
    SpeciesStatistic,
    Stand,
    StandFilter,
    StandHistoryPoint,
)
from forest_dashboard.infrastructure.api_constants import (
    APIConstants,
    StandsAPIEndpoints,
)
from forest_dashboard.infrastructure.errors import FetchError
from forest_dashboard.services.domain.stand_transform import (
    transform_history,
    transform_species_statistics,
    transform_stand,
    transform_stands,
)

logger = logging.getLogger(__name__)


class StandAPIClient:
    """
    Client for the stands REST API.

    Transport failures are retried with exponential backoff. A non-2xx
    status is raised immediately as FetchError.
    """

    def __init__(self, config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the API client with configuration."""
        self.config = config or default_settings
        self.base_url = self.config.stands_api_base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"accept": APIConstants.CONTENT_TYPE_JSON},
            timeout=self.config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "StandAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """
        Send a request, retrying transport errors only.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            **kwargs: Additional arguments for the request

        Returns:
            Successful response

        Raises:
            FetchError: On a non-2xx status or when retries are exhausted
        """
        @retry(
            stop=stop_after_attempt(self.config.max_retry_attempts),
            wait=wait_exponential(
                multiplier=self.config.retry_backoff_multiplier,
                min=self.config.retry_min_wait,
                max=self.config.retry_max_wait,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        async def attempt() -> httpx.Response:
            return await self.client.request(method, endpoint, **kwargs)

        try:
            response = await attempt()
        except httpx.TransportError as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise FetchError(503, f"API request error: {e}", endpoint) from e

        if not response.is_success:
            logger.error(f"{method} {endpoint} returned {response.status_code}")
            raise FetchError(
                response.status_code,
                f"API request failed: {response.status_code} - {response.text}",
                endpoint,
            )
        return response

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Make an HTTP request and decode its JSON body.

        Raises:
            FetchError: If the request fails or the body is not JSON
        """
        response = await self._send(method, endpoint, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(502, f"Invalid JSON from {endpoint}", endpoint) from e

    def _require_admin(self, operation: str) -> None:
        if not self.config.admin_enabled:
            raise FetchError(403, f"{operation} requires admin mode")

    async def list_stands(self) -> List[Stand]:
        """
        Fetch every stand.

        Returns:
            Canonical stands; malformed records are dropped
        """
        data = await self._make_request("GET", StandsAPIEndpoints.STANDS)
        return transform_stands(data if isinstance(data, list) else [])

    async def get_stand(self, stand_id: str) -> Stand:
        """
        Fetch a single stand.

        Raises:
            FetchError: If the request fails or the record is unusable
        """
        endpoint = StandsAPIEndpoints.stand(stand_id)
        stand = transform_stand(await self._make_request("GET", endpoint))
        if stand is None:
            raise FetchError(404, f"Stand {stand_id} not found", endpoint)
        return stand

    async def list_nearby(self, lon: float, lat: float, radius_meters: float) -> List[Stand]:
        """
        Fetch stands within a radius of a point.

        Args:
            lon: Centre longitude
            lat: Centre latitude
            radius_meters: Search radius in meters

        Returns:
            Canonical stands as returned by the API
        """
        data = await self._make_request(
            "GET",
            StandsAPIEndpoints.NEARBY,
            params={"lon": lon, "lat": lat, "radiusMeters": radius_meters},
        )
        return transform_stands(data if isinstance(data, list) else [])

    async def species_statistics(self) -> List[SpeciesStatistic]:
        """Fetch per-species statistics with display colours attached."""
        data = await self._make_request("GET", StandsAPIEndpoints.SPECIES_STATISTICS)
        return transform_species_statistics(
            data,
            colors=self.config.species_colors,
            palette=self.config.chart_palette,
            fallback=self.config.fallback_color,
        )

    async def stand_history(self, stand_id: str, years: int = 5) -> List[StandHistoryPoint]:
        """Fetch the measured volume history of a stand."""
        data = await self._make_request(
            "GET",
            StandsAPIEndpoints.history(stand_id),
            params={"years": years},
        )
        return transform_history(data)

    async def export_stands(self, fmt: str = "csv", stand_filter: Optional[StandFilter] = None) -> bytes:
        """
        Download a server-side export of the stands.

        Args:
            fmt: Export format
            stand_filter: Optional filter forwarded as query parameters

        Returns:
            Raw file content
        """
        if fmt not in APIConstants.EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")
        params: Dict[str, Any] = {"format": fmt}
        if stand_filter is not None:
            if stand_filter.species:
                params["species"] = stand_filter.species
            if stand_filter.origin:
                params["origin"] = stand_filter.origin
            if stand_filter.min_volume:
                params["minVolume"] = stand_filter.min_volume
        response = await self._send("GET", StandsAPIEndpoints.EXPORT, params=params)
        return response.content

    async def create_stand(self, payload: Dict[str, Any]) -> Any:
        self._require_admin("Creating a stand")
        return await self._make_request("POST", StandsAPIEndpoints.STANDS, json=payload)

    async def update_stand(self, stand_id: str, payload: Dict[str, Any]) -> Any:
        self._require_admin("Updating a stand")
        return await self._make_request("PUT", StandsAPIEndpoints.stand(stand_id), json=payload)

    async def delete_stand(self, stand_id: str) -> None:
        self._require_admin("Deleting a stand")
        await self._send("DELETE", StandsAPIEndpoints.stand(stand_id))
