"""
API request models using Pydantic.
"""
from typing import Optional
from pydantic import BaseModel, Field


class MapClickRequest(BaseModel):
    """A click on the map, in geographic coordinates."""
    lon: float = Field(
        ge=-180, le=180,
        description="Click longitude in degrees",
        examples=[118.8]
    )
    lat: float = Field(
        ge=-90, le=90,
        description="Click latitude in degrees",
        examples=[32.07]
    )
    zoom: Optional[float] = Field(
        default=None,
        description="Zoom level the map is rendered at; sizes the hit tolerance and probe area",
        examples=[14]
    )



class ViewUpdateRequest(BaseModel):
    """Viewport reported by the front-end after a pan or zoom."""
    lon: float = Field(ge=-180, le=180, description="Centre longitude in degrees")
    lat: float = Field(ge=-90, le=90, description="Centre latitude in degrees")
    zoom: Optional[float] = Field(
        default=None,
        description="Zoom level; clamped to the configured range, unchanged when omitted"
    )

class LayerUpdateRequest(BaseModel):
    """Visibility and opacity change for one layer."""
    visible: Optional[bool] = Field(
        default=None,
        description="Target visibility; the layer is flipped when both fields are omitted"
    )
    opacity: Optional[float] = Field(
        default=None,
        ge=0, le=1,
        description="Layer opacity between 0 and 1"
    )


class StandFilterRequest(BaseModel):
    """Attribute filter applied to the map and the statistics."""
    species: Optional[str] = Field(default=None, description="Dominant species")
    origin: Optional[str] = Field(default=None, description="Stand origin")
    min_volume: Optional[float] = Field(
        default=None,
        ge=0,
        description="Minimum volume per hectare in m³/ha"
    )

    class Config:
        json_schema_extra = {
            "example": {"species": "Pine", "min_volume": 100}
        }


class RadiusModeRequest(BaseModel):
    """Enter radius query mode."""
    radius: Optional[float] = Field(
        default=None,
        gt=0,
        description="Search radius in meters; keeps the current radius when omitted",
        examples=[1000]
    )
