"""
Domain service: aggregate statistics over a stand collection.

Every function is a pure function of its input collection, so the
dashboard re-derives all figures after each filter change instead of
updating counters incrementally.
"""
from typing import Optional, Sequence
import math

import numpy as np
from pydantic import BaseModel, Field

from forest_dashboard.domain.models import UNKNOWN, Stand


VOLUME_BUCKETS = [
    ("<50", 0, 50),
    ("50-100", 50, 100),
    ("100-150", 100, 150),
    ("150-200", 150, 200),
    (">200", 200, math.inf),
]

AGE_CLASSES = [
    ("young", 0, 10),
    ("middle-aged", 11, 20),
    ("near-mature", 21, 30),
    ("mature", 31, 50),
    ("over-mature", 51, math.inf),
]

DENSITY_CLASSES = [
    ("sparse", 0.0, 0.2),
    ("medium", 0.2, 0.7),
    ("dense", 0.7, math.inf),
]


class StandSummary(BaseModel):
    total_stands: int
    total_area: float
    total_volume: float
    avg_volume: float = Field(description="Area-weighted mean volume in m³/ha")


class GroupAggregate(BaseModel):
    key: str
    count: int
    total_area: float
    total_volume: float


class Bucket(BaseModel):
    label: str
    count: int


class GrowthProjection(BaseModel):
    """
    Projected mean volume per hectare.

    This is an extrapolation of the current mean at a fixed assumed
    growth rate, not measured history.
    """
    kind: str = "projection"
    annual_growth_rate: float
    base_volume_per_ha: float
    years: list[int]
    volume_per_ha: list[float]


def _areas(stands: Sequence[Stand]) -> np.ndarray:
    return np.array([s.area for s in stands], dtype=float)


def _volumes_per_ha(stands: Sequence[Stand]) -> np.ndarray:
    return np.array([s.volume_per_ha for s in stands], dtype=float)


def summarize(stands: Sequence[Stand]) -> StandSummary:
    """
    Overall totals.

    Total volume is summed from per-stand volume_per_ha × area.
    """
    areas = _areas(stands)
    total_area = float(areas.sum()) if len(stands) else 0.0
    total_volume = float((_volumes_per_ha(stands) * areas).sum()) if len(stands) else 0.0
    return StandSummary(
        total_stands=len(stands),
        total_area=total_area,
        total_volume=total_volume,
        avg_volume=total_volume / total_area if total_area > 0 else 0.0,
    )


def _group(stands: Sequence[Stand], attribute: str) -> list[GroupAggregate]:
    groups: dict[str, GroupAggregate] = {}
    for stand in stands:
        key = getattr(stand, attribute) or UNKNOWN
        group = groups.get(key)
        if group is None:
            group = groups[key] = GroupAggregate(key=key, count=0, total_area=0.0, total_volume=0.0)
        group.count += 1
        group.total_area += stand.area
        group.total_volume += stand.total_volume
    return list(groups.values())


def species_breakdown(stands: Sequence[Stand]) -> list[GroupAggregate]:
    """Per-species totals, in order of first appearance."""
    return _group(stands, "species")


def origin_breakdown(stands: Sequence[Stand]) -> list[GroupAggregate]:
    """Per-origin totals, in order of first appearance."""
    return _group(stands, "origin")


def _bucketize(values: np.ndarray, buckets: list[tuple[str, float, float]], closed_upper: bool) -> list[Bucket]:
    result = []
    for label, low, high in buckets:
        if closed_upper:
            mask = (values >= low) & (values <= high)
        else:
            mask = (values >= low) & (values < high)
        result.append(Bucket(label=label, count=int(mask.sum())))
    return result


def volume_distribution(stands: Sequence[Stand]) -> list[Bucket]:
    """Stand counts per volume-per-hectare range (lower bound inclusive)."""
    return _bucketize(_volumes_per_ha(stands), VOLUME_BUCKETS, closed_upper=False)


def age_distribution(stands: Sequence[Stand]) -> list[Bucket]:
    """
    Stand counts per age class.

    Class bounds are whole years, so ages are floored before bucketing.
    """
    ages = np.floor(np.array([s.age for s in stands], dtype=float))
    return _bucketize(ages, AGE_CLASSES, closed_upper=True)


def density_distribution(stands: Sequence[Stand]) -> list[Bucket]:
    densities = np.array([s.canopy_density for s in stands], dtype=float)
    return _bucketize(densities, DENSITY_CLASSES, closed_upper=False)


def growth_projection(
    stands: Sequence[Stand],
    years: int = 5,
    rate: float = 0.05,
    start_year: Optional[int] = None,
) -> GrowthProjection:
    """
    Compound the current mean volume per hectare forward.

    Args:
        stands: Stand collection
        years: Number of yearly points, the first being the current mean
        rate: Assumed annual growth rate
        start_year: Calendar year of the first point; offsets when None

    Returns:
        GrowthProjection, rounded to whole m³/ha
    """
    base = float(_volumes_per_ha(stands).mean()) if len(stands) else 0.0
    steps = np.arange(years)
    values = np.round(base * np.power(1 + rate, steps))
    labels = [int(start_year + i) for i in steps] if start_year is not None else [int(i) for i in steps]
    return GrowthProjection(
        annual_growth_rate=rate,
        base_volume_per_ha=base,
        years=labels,
        volume_per_ha=[float(v) for v in values],
    )


def unique_species(stands: Sequence[Stand]) -> list[str]:
    """Distinct known species, in order of first appearance."""
    seen = []
    for stand in stands:
        if stand.species != UNKNOWN and stand.species not in seen:
            seen.append(stand.species)
    return seen
