"""
API endpoint constants and configuration.

This module contains all external endpoint paths and related constants.
Centralizing these values makes it easy to swap out endpoints or update API versions.
"""


# Stands REST API Endpoints
class StandsAPIEndpoints:
    """Stands API endpoint paths."""

    STANDS = "/stands"
    STAND_BY_ID = "/stands/{stand_id}"
    STAND_HISTORY = "/stands/{stand_id}/history"
    NEARBY = "/stands/nearby"
    SPECIES_STATISTICS = "/stands/statistics/species"
    EXPORT = "/stands/export"

    @classmethod
    def stand(cls, stand_id) -> str:
        """
        Get the endpoint of a single stand.

        Args:
            stand_id: Stand identifier

        Returns:
            Formatted endpoint path
        """
        return cls.STAND_BY_ID.format(stand_id=stand_id)

    @classmethod
    def history(cls, stand_id) -> str:
        return cls.STAND_HISTORY.format(stand_id=stand_id)


# GeoServer OGC endpoints and parameters
class GeoServerEndpoints:
    """GeoServer service paths."""

    WFS = "/wfs"
    WMS = "/wms"

    WFS_VERSION = "1.1.0"
    WMS_VERSION = "1.1.1"

    # Mercator is the map projection, WGS84 the data projection
    MAP_SRS = "EPSG:3857"
    DATA_SRS = "EPSG:4326"

    PROBE_PROPERTIES = (
        "zone_id,xiao_ban_code,stand_name,dominant_species,volume_per_ha,"
        "area_ha,origin,stand_age,canopy_density,center_lon,center_lat,the_geom"
    )
    MAX_FEATURES = 10


# API Configuration Constants
class APIConstants:
    """General API configuration constants."""

    # HTTP Headers
    CONTENT_TYPE_JSON = "application/json"
    ACCEPT_FEATURES = "application/json, text/xml, text/plain, */*"

    # Export formats supported by the stands API
    EXPORT_FORMATS = ("csv", "xlsx", "json", "geojson")
