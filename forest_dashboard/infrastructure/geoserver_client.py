"""
Infrastructure layer: GeoServer WFS/WMS client.
"""
from typing import Any, Dict, List, Optional
import logging

import httpx

from forest_dashboard.config import Settings, settings as default_settings
from forest_dashboard.infrastructure.api_constants import (
    APIConstants,
    GeoServerEndpoints,
)
from forest_dashboard.infrastructure.errors import (
    FeatureParseError,
    FetchError,
    GeometryQueryError,
)
from forest_dashboard.infrastructure.gml import parse_feature_payload, parse_json_features
from forest_dashboard.utils.spatial_helpers import (
    buffered_bbox,
    geometry_centroid,
    planar_distance,
)

logger = logging.getLogger(__name__)


class GeoServerClient:
    """
    Client for the map server's OGC endpoints.

    Probe queries work in map coordinates (EPSG:3857); geometry lookups
    return data coordinates (EPSG:4326).
    """

    def __init__(self, config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or default_settings
        self.base_url = self.config.geoserver_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"accept": APIConstants.ACCEPT_FEATURES},
            timeout=self.config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GeoServerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> httpx.Response:
        try:
            response = await self.client.get(endpoint, params=params)
        except httpx.TransportError as e:
            logger.error(f"GeoServer {endpoint} {params.get('request')} failed: {e}")
            raise FetchError(503, f"Map server request error: {e}", endpoint) from e
        if not response.is_success:
            logger.error(f"GeoServer {endpoint} {params.get('request')} returned {response.status_code}")
            raise FetchError(
                response.status_code,
                f"Map server request failed: {response.status_code}",
                endpoint,
            )
        return response

    def probe_buffer(self, resolution: float) -> float:
        """Probe half-width in map units; scales with the current zoom."""
        return self.config.probe_buffer_factor * resolution

    async def fetch_stand_geometry(self, stand_id: str) -> Dict[str, Any]:
        """
        Fetch the boundary of a stand as a GeoJSON FeatureCollection.

        Args:
            stand_id: Stand identifier

        Returns:
            FeatureCollection dict in EPSG:4326

        Raises:
            GeometryQueryError: If the query fails or returns garbage
        """
        params = {
            "service": "WFS",
            "version": GeoServerEndpoints.WFS_VERSION,
            "request": "GetFeature",
            "typename": self.config.wfs_typename,
            "outputFormat": APIConstants.CONTENT_TYPE_JSON,
            "srsname": GeoServerEndpoints.DATA_SRS,
            "cql_filter": f"id={stand_id}",
        }
        try:
            response = await self._get(GeoServerEndpoints.WFS, params)
            features = parse_json_features(response.text)
        except FetchError as e:
            raise GeometryQueryError(e.status_code, f"Geometry query for stand {stand_id} failed", e.endpoint) from e
        except FeatureParseError as e:
            raise GeometryQueryError(502, f"Geometry query for stand {stand_id} returned invalid data",
                                     GeoServerEndpoints.WFS) from e
        return {"type": "FeatureCollection", "features": features}

    async def probe_features_near(self, point: tuple[float, float], buffer: float) -> List[Dict[str, Any]]:
        """
        Find stand features around a clicked map point.

        Args:
            point: (x, y) in EPSG:3857
            buffer: Half-width of the probe box in meters

        Returns:
            Normalized features sorted by distance, each within 2 × buffer
            of the point; empty when the payload cannot be parsed

        Raises:
            FetchError: If the request itself fails
        """
        min_x, min_y, max_x, max_y = buffered_bbox(point[0], point[1], buffer)
        params = {
            "service": "WFS",
            "version": GeoServerEndpoints.WFS_VERSION,
            "request": "GetFeature",
            "typename": self.config.wfs_typename,
            "outputFormat": APIConstants.CONTENT_TYPE_JSON,
            "srsname": GeoServerEndpoints.MAP_SRS,
            "bbox": f"{min_x},{min_y},{max_x},{max_y},{GeoServerEndpoints.MAP_SRS}",
            "propertyName": GeoServerEndpoints.PROBE_PROPERTIES,
            "maxFeatures": GeoServerEndpoints.MAX_FEATURES,
        }
        response = await self._get(GeoServerEndpoints.WFS, params)

        try:
            features = parse_feature_payload(response.text, response.headers.get("content-type", ""))
        except FeatureParseError as e:
            logger.warning(f"Unreadable probe response, treating as no results: {e}")
            return []

        return filter_features_near(features, point, buffer)

    async def check_connectivity(self) -> bool:
        """
        Best-effort reachability check of the WMS endpoint.

        Returns:
            True when the map server answered successfully
        """
        params = {
            "service": "WMS",
            "version": GeoServerEndpoints.WMS_VERSION,
            "request": "GetCapabilities",
        }
        try:
            await self._get(GeoServerEndpoints.WMS, params)
        except FetchError as e:
            logger.warning(f"Map server unavailable ({e.status_code}), raster layer degraded")
            return False
        return True

    def wms_params(self, cql_filter: Optional[str] = None) -> Dict[str, Any]:
        """
        Parameters sent with every stand tile request.

        Args:
            cql_filter: Active CQL fragment, if any

        Returns:
            WMS parameter mapping
        """
        params: Dict[str, Any] = {
            "LAYERS": self.config.wms_layer,
            "TILED": True,
            "FORMAT": "image/png",
            "TRANSPARENT": True,
            "VERSION": GeoServerEndpoints.WMS_VERSION,
        }
        if cql_filter:
            params["CQL_FILTER"] = cql_filter
        return params


def filter_features_near(
    features: List[Dict[str, Any]],
    point: tuple[float, float],
    buffer: float,
) -> List[Dict[str, Any]]:
    """
    Keep features whose centroid lies within 2 × buffer of a point.

    Features without a usable geometry are dropped.

    Args:
        features: Normalized features in the point's coordinate system
        point: Reference (x, y)
        buffer: Probe half-width

    Returns:
        Features annotated with "distance", nearest first
    """
    tolerance = 2 * buffer
    kept = []
    for feature in features:
        centroid = geometry_centroid(feature.get("geometry"))
        if centroid is None:
            continue
        distance = planar_distance(centroid, point)
        if distance <= tolerance:
            kept.append({**feature, "distance": distance})
    kept.sort(key=lambda f: f["distance"])
    return kept
