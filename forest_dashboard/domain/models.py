"""
Domain models for forest stands, filters and query results.

These models represent the core domain entities and should be independent
of any infrastructure concerns (API clients, map server, etc.).
"""
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, Field, computed_field


UNKNOWN = "unknown"


class Stand(BaseModel):
    """A forest stand (management parcel)."""
    id: str
    code: str = UNKNOWN
    name: str = UNKNOWN
    species: str = UNKNOWN
    origin: str = UNKNOWN
    area: float = Field(default=0.0, ge=0, description="Area in hectares")
    volume_per_ha: float = Field(default=0.0, ge=0, description="Growing stock in m³/ha")
    age: float = Field(default=0.0, ge=0, description="Stand age in years")
    canopy_density: float = Field(default=0.0, ge=0, le=1, description="Crown cover fraction")
    center_lon: float = 0.0
    center_lat: float = 0.0
    geometry: Optional[dict[str, Any]] = Field(
        default=None,
        description="GeoJSON boundary, fetched lazily from the map server"
    )

    @computed_field
    @property
    def total_volume(self) -> float:
        """Total growing stock in m³, always volume_per_ha × area."""
        return self.volume_per_ha * self.area


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class StandFilter(BaseModel):
    """
    Active attribute filter.

    All set conditions are combined with AND, both for client-side
    matching and for the CQL fragment sent to the map server.
    """
    species: Optional[str] = None
    origin: Optional[str] = None
    min_volume: Optional[float] = Field(default=None, ge=0)

    @property
    def is_empty(self) -> bool:
        return not self.species and not self.origin and not self.min_volume

    def matches(self, stand: Stand) -> bool:
        if self.species and stand.species != self.species:
            return False
        if self.origin and stand.origin != self.origin:
            return False
        if self.min_volume and stand.volume_per_ha < self.min_volume:
            return False
        return True

    def to_cql(self) -> Optional[str]:
        """
        Render the filter as a CQL fragment.

        Returns:
            e.g. "dominant_species='Pine' AND volume_per_ha>=100",
            or None when no condition is set
        """
        conditions = []
        if self.species:
            conditions.append(f"dominant_species={_quote(self.species)}")
        if self.origin:
            conditions.append(f"origin={_quote(self.origin)}")
        if self.min_volume:
            conditions.append(f"volume_per_ha>={_format_number(self.min_volume)}")
        return " AND ".join(conditions) if conditions else None


class SpeciesStatistic(BaseModel):
    """Per-species aggregate as reported by the stands API."""
    species: str
    stand_count: int = 0
    total_area: float = 0.0
    total_volume: float = 0.0
    avg_volume_per_ha: float = 0.0
    color: str
    percentage: float = 0.0


class StandHistoryPoint(BaseModel):
    """Historical volume measurement for one stand."""
    year: int
    volume_per_ha: float = 0.0


class GeoPoint(BaseModel):
    lon: float
    lat: float


# ============================================================
# Query results
# ============================================================

class StandCandidate(BaseModel):
    """Summary of one stand in an ambiguous click result."""
    id: str
    code: str
    name: str
    species: str
    area: float
    volume_per_ha: float


class RadiusMatch(BaseModel):
    """A stand returned by a radius query, with its distance to the centre."""
    stand: Stand
    distance: float = Field(description="Distance to the query centre in meters")


class SingleResult(BaseModel):
    type: Literal["single"] = "single"
    stand: Stand
    total_volume: float
    distance: Optional[float] = None


class ListResult(BaseModel):
    type: Literal["list"] = "list"
    candidates: list[StandCandidate]


class RadiusResult(BaseModel):
    type: Literal["radius"] = "radius"
    center: GeoPoint
    radius: float
    stands: list[RadiusMatch]
    total_area: float
    total_volume: float

    @computed_field
    @property
    def count(self) -> int:
        return len(self.stands)


class LoadingResult(BaseModel):
    type: Literal["loading"] = "loading"
    message: str = "Querying..."


class ErrorResult(BaseModel):
    type: Literal["error"] = "error"
    message: str


QueryResult = Annotated[
    Union[SingleResult, ListResult, RadiusResult, LoadingResult, ErrorResult],
    Field(discriminator="type"),
]


# ============================================================
# Layers
# ============================================================

LayerKind = Literal["base", "xyz", "wms", "vector", "heatmap", "overlay"]


class LayerState(BaseModel):
    """A named, toggleable visual channel."""
    name: str
    title: str
    kind: LayerKind
    visible: bool = False
    opacity: float = Field(default=1.0, ge=0, le=1)
    z_index: int = 0
