"""
API router for stand endpoints.
"""
from fastapi import APIRouter, HTTPException, Path, Query
from typing import Annotated

from forest_dashboard.api.dependencies import DashboardDep
from forest_dashboard.api.v1.models.responses import (
    ERROR_RESPONSES,
    ReloadResponse,
    SpeciesStatisticsResponse,
    StandHistoryResponse,
    StandListResponse,
)
from forest_dashboard.domain.models import Stand
from forest_dashboard.infrastructure.errors import FetchError


router = APIRouter(
    prefix="/stands",
    tags=["stands"],
)


@router.get(
    "",
    response_model=StandListResponse,
    summary="List stands",
    description="Return the loaded stands that match the active filter.",
    responses=ERROR_RESPONSES,
)
async def list_stands(dashboard: DashboardDep) -> StandListResponse:
    stands = dashboard.filtered_stands()
    return StandListResponse(count=len(stands), total=len(dashboard.stands), stands=stands)


@router.post(
    "/reload",
    response_model=ReloadResponse,
    summary="Reload stands",
    description="""
    Fetch the stand collection from the stands API again.

    Markers, heatmap and statistics are rebuilt from the new collection.
    """,
    responses=ERROR_RESPONSES,
)
async def reload_stands(dashboard: DashboardDep) -> ReloadResponse:
    stands = await dashboard.load_stands()
    return ReloadResponse(loaded=len(stands))


@router.get(
    "/statistics/species",
    response_model=SpeciesStatisticsResponse,
    summary="Per-species statistics",
    responses=ERROR_RESPONSES,
)
async def species_statistics(dashboard: DashboardDep) -> SpeciesStatisticsResponse:
    return SpeciesStatisticsResponse(species=await dashboard.species_statistics())


@router.get(
    "/{stand_id}",
    response_model=Stand,
    summary="Get a stand",
    responses={
        404: {"description": "Stand not found"},
        **ERROR_RESPONSES,
    },
)
async def get_stand(
    stand_id: Annotated[str, Path(description="Stand identifier")],
    dashboard: DashboardDep,
) -> Stand:
    """
    Get one stand, from the loaded collection when possible.

    Raises:
        HTTPException: If the stands API does not know the stand
    """
    try:
        return await dashboard.get_stand(stand_id)
    except FetchError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Stand '{stand_id}' not found")
        raise


@router.get(
    "/{stand_id}/history",
    response_model=StandHistoryResponse,
    summary="Stand volume history",
    responses={
        404: {"description": "Stand not found"},
        **ERROR_RESPONSES,
    },
)
async def stand_history(
    stand_id: Annotated[str, Path(description="Stand identifier")],
    dashboard: DashboardDep,
    years: Annotated[int, Query(ge=1, le=50, description="Number of years of history")] = 5,
) -> StandHistoryResponse:
    try:
        history = await dashboard.stand_history(stand_id, years)
    except FetchError as e:
        if e.status_code == 404:
            raise HTTPException(status_code=404, detail=f"Stand '{stand_id}' not found")
        raise
    return StandHistoryResponse(stand_id=stand_id, history=history)
