"""
API response models using Pydantic.
"""
from typing import Any, List, Optional
from pydantic import BaseModel, Field

from forest_dashboard.domain.models import (
    QueryResult,
    SpeciesStatistic,
    Stand,
    StandFilter,
    StandHistoryPoint,
)


class StandListResponse(BaseModel):
    """Response model for the filtered stand collection."""
    count: int = Field(description="Number of stands after filtering")
    total: int = Field(description="Number of loaded stands")
    stands: List[Stand] = Field(description="Stands matching the active filter")


class StandHistoryResponse(BaseModel):
    stand_id: str
    history: List[StandHistoryPoint]


class SpeciesStatisticsResponse(BaseModel):
    species: List[SpeciesStatistic] = Field(
        description="Per-species aggregates with display colours"
    )


class QueryResponse(BaseModel):
    """Outcome of a map click."""
    result: Optional[QueryResult] = Field(
        default=None,
        description="Result now shown in the popup; null when nothing was found"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "result": {
                    "type": "radius",
                    "center": {"lon": 118.8, "lat": 32.07},
                    "radius": 1000,
                    "stands": [],
                    "total_area": 0,
                    "total_volume": 0,
                    "count": 0,
                }
            }
        }


class LayerResponse(BaseModel):
    name: str
    visible: bool
    opacity: float
    service_degraded: bool


class FilterResponse(BaseModel):
    filter: StandFilter
    cql_filter: Optional[str] = Field(
        default=None,
        description="CQL fragment sent with stand tile requests"
    )
    filtered_count: int


class RadiusModeResponse(BaseModel):
    mode: str
    radius: float
    radius_options: List[int]


class HighlightResponse(BaseModel):
    stand_id: str
    highlighted: bool
    overlay: Optional[dict[str, Any]] = None


class ReloadResponse(BaseModel):
    loaded: int


# Error responses shared by every route's OpenAPI documentation
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    429: {"description": "Rate limit exceeded"},
    500: {"description": "Internal server error"},
    502: {"description": "Upstream service returned an invalid payload"},
    503: {"description": "Upstream service unreachable"},
}
