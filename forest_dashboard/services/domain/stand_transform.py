"""
Domain service: mapping of backend payloads to canonical stand records.

Backend field names drift between releases and between the REST API
(camelCase) and the map server (snake_case attribute columns). Every
known spelling of a canonical field is listed once in the alias tables
below; call sites never chain fallbacks themselves.
"""
from typing import Any, Iterable, Iterator, Mapping, Optional
import logging
import math

from pydantic import ValidationError

from forest_dashboard.domain.models import (
    UNKNOWN,
    SpeciesStatistic,
    Stand,
    StandHistoryPoint,
)
from forest_dashboard.utils.spatial_helpers import geometry_centroid

logger = logging.getLogger(__name__)


STAND_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "standId", "stand_id", "gid", "zoneId", "zone_id"),
    "code": ("xiaoBanCode", "xiao_ban_code", "standNo", "stand_no", "code"),
    "name": ("standName", "stand_name", "name"),
    "species": ("dominantSpecies", "dominant_species", "species"),
    "origin": ("origin", "standOrigin", "stand_origin"),
    "area": ("areaHa", "area_ha", "area"),
    "volume_per_ha": ("volumePerHa", "volume_per_ha", "volume"),
    "age": ("standAge", "stand_age", "age"),
    "canopy_density": ("canopyDensity", "canopy_density", "density"),
    "center_lon": ("centerLon", "center_lon", "lon", "longitude"),
    "center_lat": ("centerLat", "center_lat", "lat", "latitude"),
}

SPECIES_STATISTIC_ALIASES: dict[str, tuple[str, ...]] = {
    "species": ("species", "dominantSpecies", "dominant_species"),
    "stand_count": ("standCount", "count", "totalCount", "stand_count"),
    "total_area": ("totalArea", "total_area", "area"),
    "total_volume": ("totalVolume", "total_volume"),
    "avg_volume_per_ha": ("avgVolumePerHa", "avg_volume_per_ha", "averageVolume"),
}

HISTORY_ALIASES: dict[str, tuple[str, ...]] = {
    "year": ("year", "surveyYear", "survey_year"),
    "volume_per_ha": ("volumePerHa", "volume_per_ha", "volume"),
}

ORIGIN_VALUES: dict[str, str] = {
    "planted": "planted",
    "plantation": "planted",
    "artificial": "planted",
    "人工": "planted",
    "natural": "natural",
    "天然": "natural",
    "aerial-seeded": "aerial-seeded",
    "aerial_seeded": "aerial-seeded",
    "aerial seeding": "aerial-seeded",
    "飞播": "aerial-seeded",
    "coppice": "coppice",
    "萌生": "coppice",
}

NUMERIC_FIELDS = ("area", "volume_per_ha", "age", "canopy_density")
COORDINATE_FIELDS = ("center_lon", "center_lat")
STRING_FIELDS = ("code", "name", "species", "origin")


def _lookup(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _to_identifier(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _to_text(value: Any) -> str:
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text or UNKNOWN


def normalize_origin(value: Any) -> str:
    """Map an origin label to the canonical vocabulary, 'unknown' otherwise."""
    text = _to_text(value)
    return ORIGIN_VALUES.get(text.lower(), ORIGIN_VALUES.get(text, UNKNOWN))


def normalize_density(value: Any) -> float:
    """
    Canopy density as a fraction.

    Values between 1 and 100 are read as percentages.
    """
    density = max(_to_float(value), 0.0)
    if density > 1.0:
        density = density / 100.0 if density <= 100.0 else 1.0
    return density


def transform_stand(raw: Any) -> Optional[Stand]:
    """
    Transform a raw backend record into a canonical Stand.

    Missing optional fields default to 0 (numbers) or "unknown"
    (strings). Any independently supplied total volume is ignored.

    Args:
        raw: Record as returned by the stands API or the map server

    Returns:
        Stand, or None when the record is not a usable stand
    """
    if not isinstance(raw, Mapping):
        return None

    stand_id = _to_identifier(_lookup(raw, STAND_ALIASES["id"]))
    if stand_id is None:
        return None

    values: dict[str, Any] = {"id": stand_id}
    for field in STRING_FIELDS:
        values[field] = _to_text(_lookup(raw, STAND_ALIASES[field]))
    values["origin"] = normalize_origin(values["origin"])

    for field in NUMERIC_FIELDS:
        values[field] = max(_to_float(_lookup(raw, STAND_ALIASES[field])), 0.0)
    values["canopy_density"] = normalize_density(_lookup(raw, STAND_ALIASES["canopy_density"]))

    for field in COORDINATE_FIELDS:
        values[field] = _to_float(_lookup(raw, STAND_ALIASES[field]))

    geometry = raw.get("geometry")
    if isinstance(geometry, Mapping):
        values["geometry"] = dict(geometry)

    try:
        return Stand(**values)
    except ValidationError as e:
        logger.debug(f"Rejected stand record {stand_id}: {e}")
        return None


def transform_feature(feature: Any) -> Optional[Stand]:
    """
    Transform a GeoJSON feature from the map server into a Stand.

    The stand centre falls back to the geometry centroid when the
    feature carries no centre attributes.
    """
    if not isinstance(feature, Mapping):
        return None

    properties = dict(feature.get("properties") or {})
    if _lookup(properties, STAND_ALIASES["id"]) is None and feature.get("id") is not None:
        properties["id"] = feature["id"]
    geometry = feature.get("geometry")
    if isinstance(geometry, Mapping):
        properties["geometry"] = geometry

    stand = transform_stand(properties)
    if stand is None:
        return None

    has_center = (
        _lookup(properties, STAND_ALIASES["center_lon"]) is not None
        and _lookup(properties, STAND_ALIASES["center_lat"]) is not None
    )
    if not has_center and stand.geometry:
        centroid = geometry_centroid(stand.geometry)
        if centroid is not None:
            stand = stand.model_copy(update={"center_lon": centroid[0], "center_lat": centroid[1]})
    return stand


class StandBatch:
    """
    Lazy batch transform.

    Iterating yields canonical stands in input order; records that fail
    the single-record transform are skipped and counted in `dropped`.
    """

    def __init__(self, records: Optional[Iterable[Any]]):
        self._records = records or []
        self.dropped = 0
        self.accepted = 0

    def __iter__(self) -> Iterator[Stand]:
        for index, raw in enumerate(self._records):
            stand = transform_stand(raw)
            if stand is None:
                self.dropped += 1
                logger.warning(f"Dropped malformed stand record at index {index} "
                               f"({self.dropped} dropped so far)")
                continue
            self.accepted += 1
            yield stand


def transform_stands(records: Optional[Iterable[Any]]) -> list[Stand]:
    """Transform a raw array of stand records, dropping malformed ones."""
    batch = StandBatch(records)
    stands = list(batch)
    if batch.dropped:
        logger.info(f"Transformed {batch.accepted} stands, dropped {batch.dropped}")
    return stands


def assign_color(
    species: str,
    index: int,
    colors: Mapping[str, str],
    palette: list[str],
    fallback: str,
) -> str:
    """Explicit colour first, then the cyclic palette, then the fallback gray."""
    if species in colors:
        return colors[species]
    if palette:
        return palette[index % len(palette)]
    return fallback


def transform_species_statistics(
    records: Any,
    colors: Mapping[str, str],
    palette: list[str],
    fallback: str,
) -> list[SpeciesStatistic]:
    """
    Transform species statistics and attach display colours.

    Args:
        records: Raw array from the species statistics endpoint
        colors: Explicit species -> colour table
        palette: Cyclic palette indexed by order of appearance
        fallback: Colour used when neither applies

    Returns:
        List of SpeciesStatistic with percentages of the total stand count
    """
    if not isinstance(records, list):
        return []

    rows = []
    for raw in records:
        if not isinstance(raw, Mapping):
            logger.warning("Dropped malformed species statistic record")
            continue
        rows.append({
            "species": _to_text(_lookup(raw, SPECIES_STATISTIC_ALIASES["species"])),
            "stand_count": int(max(_to_float(_lookup(raw, SPECIES_STATISTIC_ALIASES["stand_count"])), 0)),
            "total_area": max(_to_float(_lookup(raw, SPECIES_STATISTIC_ALIASES["total_area"])), 0.0),
            "total_volume": max(_to_float(_lookup(raw, SPECIES_STATISTIC_ALIASES["total_volume"])), 0.0),
            "avg_volume_per_ha": max(_to_float(_lookup(raw, SPECIES_STATISTIC_ALIASES["avg_volume_per_ha"])), 0.0),
        })

    total = sum(row["stand_count"] for row in rows)
    return [
        SpeciesStatistic(
            **row,
            color=assign_color(row["species"], index, colors, palette, fallback),
            percentage=round(row["stand_count"] / total * 100, 1) if total > 0 else 0.0,
        )
        for index, row in enumerate(rows)
    ]


def transform_history(records: Any) -> list[StandHistoryPoint]:
    """Transform a stand's volume history, sorted by year."""
    if not isinstance(records, list):
        return []
    points = []
    for raw in records:
        if not isinstance(raw, Mapping):
            continue
        year = _lookup(raw, HISTORY_ALIASES["year"])
        if year is None:
            continue
        points.append(StandHistoryPoint(
            year=int(_to_float(year)),
            volume_per_ha=max(_to_float(_lookup(raw, HISTORY_ALIASES["volume_per_ha"])), 0.0),
        ))
    return sorted(points, key=lambda p: p.year)
