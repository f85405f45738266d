"""
API router for dashboard statistics.
"""
from fastapi import APIRouter, Query
from typing import Annotated, Optional

from forest_dashboard.api.dependencies import DashboardDep
from forest_dashboard.api.v1.models.responses import ERROR_RESPONSES
from forest_dashboard.services.application.dashboard_service import DashboardStatistics


router = APIRouter(
    prefix="/statistics",
    tags=["statistics"],
)


@router.get(
    "",
    response_model=DashboardStatistics,
    summary="Dashboard statistics",
    description="""
    Chart-ready aggregates recomputed from the filtered stand collection:
    summary totals, species and origin breakdowns, volume, age and
    density distributions and the growth projection.

    The growth projection compounds the current mean volume per hectare
    at an assumed annual rate; it is not measured history.
    """,
    responses=ERROR_RESPONSES,
)
async def get_statistics(
    dashboard: DashboardDep,
    start_year: Annotated[
        Optional[int],
        Query(description="Calendar year of the first projection point"),
    ] = None,
) -> DashboardStatistics:
    return dashboard.dashboard_statistics(start_year=start_year)
