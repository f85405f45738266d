"""
Client-side export of already loaded collections.
"""
from typing import Any, Iterable, Mapping, Optional, Sequence
import csv
import io
import json

from forest_dashboard.domain.models import RadiusResult, Stand

BOM = "\ufeff"

STAND_COLUMNS = [
    ("id", "Stand ID"),
    ("code", "Parcel code"),
    ("name", "Name"),
    ("species", "Dominant species"),
    ("origin", "Origin"),
    ("area", "Area (ha)"),
    ("volume_per_ha", "Volume (m³/ha)"),
    ("total_volume", "Total volume (m³)"),
    ("age", "Age (years)"),
    ("canopy_density", "Canopy density"),
    ("center_lon", "Longitude"),
    ("center_lat", "Latitude"),
]


def to_csv(rows: Sequence[Mapping[str, Any]]) -> str:
    """
    Serialize rows as CSV with a UTF-8 byte order mark.

    Columns follow the keys of the first row; None becomes an empty cell.
    """
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()), lineterminator="\n",
                            extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: ("" if value is None else value) for key, value in row.items()})
    return BOM + buffer.getvalue()


def _stand_row(stand: Stand, extra: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    data = stand.model_dump()
    row = {title: data[field] for field, title in STAND_COLUMNS}
    if extra:
        row.update(extra)
    return row


def stands_to_csv(stands: Iterable[Stand]) -> str:
    return to_csv([_stand_row(stand) for stand in stands])


def radius_result_to_csv(result: RadiusResult) -> str:
    return to_csv([
        _stand_row(match.stand, {"Distance (m)": round(match.distance)})
        for match in result.stands
    ])


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def stands_to_json(stands: Iterable[Stand]) -> str:
    return to_json([stand.model_dump(exclude={"geometry"}) for stand in stands])


def stands_to_geojson(stands: Iterable[Stand]) -> str:
    """
    Serialize stands as a GeoJSON FeatureCollection.

    Stands without a boundary are written as their centre point.
    """
    features = []
    for stand in stands:
        geometry = stand.geometry or {
            "type": "Point",
            "coordinates": [stand.center_lon, stand.center_lat],
        }
        features.append({
            "type": "Feature",
            "id": stand.id,
            "properties": stand.model_dump(exclude={"geometry"}),
            "geometry": geometry,
        })
    return to_json({"type": "FeatureCollection", "features": features})
