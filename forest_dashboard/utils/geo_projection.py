"""
Geospatial projection utilities for coordinate transformations.
"""
from functools import lru_cache
from typing import List, Tuple
from pyproj import Transformer


# Web Mercator ground resolution at zoom 0 (meters per pixel, 256px tiles)
MERCATOR_ZOOM0_RESOLUTION = 156543.03392804097


def get_utm_zone(longitude: float) -> int:
    """
    Calculate the UTM zone number from longitude.

    Args:
        longitude: Longitude in degrees

    Returns:
        UTM zone number (1-60)
    """
    return min(int((longitude + 180) / 6) + 1, 60)


def get_utm_crs(longitude: float, latitude: float) -> str:
    """
    Get the appropriate UTM CRS (Coordinate Reference System) for a location.

    Args:
        longitude: Longitude in degrees
        latitude: Latitude in degrees

    Returns:
        EPSG code for the UTM zone
    """
    zone = get_utm_zone(longitude)
    # Northern hemisphere: EPSG:326XX, Southern hemisphere: EPSG:327XX
    hemisphere = "6" if latitude >= 0 else "7"
    return f"EPSG:32{hemisphere}{zone:02d}"


@lru_cache(maxsize=8)
def get_transformer(source: str, target: str) -> Transformer:
    """Cached always_xy transformer between two CRS codes."""
    return Transformer.from_crs(source, target, always_xy=True)


def lonlat_to_mercator(lon: float, lat: float) -> Tuple[float, float]:
    """Project a WGS84 lon/lat pair to Web Mercator meters."""
    x, y = get_transformer("EPSG:4326", "EPSG:3857").transform(lon, lat)
    return (x, y)


def project_ring_to_meters(
    ring: List[List[float]]
) -> List[Tuple[float, float]]:
    """
    Project a [lon, lat] ring into the UTM zone of its first vertex.

    Args:
        ring: List of [longitude, latitude] pairs

    Returns:
        List of (x, y) coordinates in meters
    """
    if not ring:
        raise ValueError("Coordinates list cannot be empty")

    lon, lat = ring[0][0], ring[0][1]
    transformer = get_transformer("EPSG:4326", get_utm_crs(lon, lat))
    return [transformer.transform(point[0], point[1]) for point in ring]


def resolution_for_zoom(zoom: float) -> float:
    """
    Web Mercator resolution in meters per pixel at a zoom level.

    Args:
        zoom: Map zoom level (fractional zooms allowed)

    Returns:
        Meters per pixel
    """
    return MERCATOR_ZOOM0_RESOLUTION / (2 ** zoom)
