"""
Spatial helper functions.

Provides utilities for:
- Great-circle distances
- Polygon centroid, area and containment
- Bounding boxes and KD-Tree spatial indexing
"""
from typing import Any, Mapping, Optional
import math
import logging

import numpy as np
from scipy.spatial import KDTree
from shapely.geometry import Point, Polygon, mapping, shape
from shapely.ops import transform
from shapely.errors import ShapelyError

from forest_dashboard.utils.geo_projection import get_transformer, project_ring_to_meters

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_distance(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """
    Great-circle distance between two lon/lat points.

    Args:
        lon1: Start longitude in degrees
        lat1: Start latitude in degrees
        lon2: End longitude in degrees
        lat2: End latitude in degrees

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def planar_distance(point1: tuple[float, float], point2: tuple[float, float]) -> float:
    """Euclidean distance between two projected points."""
    return math.hypot(point1[0] - point2[0], point1[1] - point2[1])


def _outer_ring(coordinates: list) -> list:
    # Accept either a bare ring or a GeoJSON ring list
    if coordinates and isinstance(coordinates[0][0], (list, tuple)):
        return coordinates[0]
    return coordinates


def polygon_centroid(coordinates: list) -> tuple[float, float]:
    """
    Calculate the centroid of a polygon.

    Args:
        coordinates: Ring of [x, y] pairs, or a GeoJSON list of rings

    Returns:
        (x, y) centroid; the vertex mean for degenerate polygons
    """
    ring = _outer_ring(coordinates)
    if len(ring) >= 3:
        polygon = Polygon(ring)
        if polygon.area > 0:
            return (polygon.centroid.x, polygon.centroid.y)

    points = np.array(ring, dtype=float)
    mean = points[:, :2].mean(axis=0)
    return (float(mean[0]), float(mean[1]))


def geometry_centroid(geometry: Optional[Mapping[str, Any]]) -> Optional[tuple[float, float]]:
    """
    Calculate the centroid of any GeoJSON geometry.

    Args:
        geometry: GeoJSON geometry mapping

    Returns:
        (x, y) centroid, or None when the geometry is missing or invalid
    """
    if not geometry or not geometry.get("coordinates"):
        return None
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError) as e:
        logger.debug(f"Cannot build geometry of type {geometry.get('type')}: {e}")
        return None
    if geom.is_empty:
        return None
    centroid = geom.centroid
    if centroid.is_empty:
        return None
    return (centroid.x, centroid.y)


def reproject_geometry(
    geometry: Optional[Mapping[str, Any]],
    source: str = "EPSG:3857",
    target: str = "EPSG:4326",
) -> Optional[dict[str, Any]]:
    """
    Reproject a GeoJSON geometry between coordinate systems.

    Args:
        geometry: GeoJSON geometry mapping
        source: CRS of the input coordinates
        target: CRS of the output coordinates

    Returns:
        Reprojected GeoJSON geometry, or None when the input is unusable
    """
    if not geometry or not geometry.get("coordinates"):
        return None
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError) as e:
        logger.debug(f"Cannot reproject geometry of type {geometry.get('type')}: {e}")
        return None
    transformer = get_transformer(source, target)
    return mapping(transform(transformer.transform, geom))


def polygon_area_m2(coordinates: list) -> float:
    """
    Area of a lon/lat polygon in square meters.

    The ring is projected into the UTM zone of its first vertex.

    Args:
        coordinates: Ring of [lon, lat] pairs, or a GeoJSON list of rings

    Returns:
        Area in square meters
    """
    ring = _outer_ring(coordinates)
    if len(ring) < 3:
        return 0.0
    return float(Polygon(project_ring_to_meters(ring)).area)


def point_in_polygon(lon: float, lat: float, polygon: list) -> bool:
    """
    Check if a point is inside a polygon.

    Args:
        lon: Point longitude
        lat: Point latitude
        polygon: Ring of [lon, lat] pairs, or a GeoJSON list of rings

    Returns:
        True if point is inside polygon, False otherwise
    """
    ring = _outer_ring(polygon)
    if len(ring) < 3:
        return False
    return Polygon(ring).contains(Point(lon, lat))


def buffered_bbox(x: float, y: float, buffer: float) -> tuple[float, float, float, float]:
    """Square bounding box of half-width `buffer` around a point."""
    return (x - buffer, y - buffer, x + buffer, y + buffer)


def build_kdtree(coordinates: list[tuple[float, float]]) -> KDTree:
    """
    Build a KD-Tree for efficient spatial queries.

    Args:
        coordinates: List of (x, y) coordinate tuples

    Returns:
        KDTree instance
    """
    points = np.array(coordinates, dtype=float).reshape(-1, 2)
    return KDTree(points)
