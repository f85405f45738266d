"""
API router for file exports.
"""
from fastapi import APIRouter, HTTPException, Path
from fastapi.responses import Response
from typing import Annotated, Literal

from forest_dashboard.api.dependencies import DashboardDep
from forest_dashboard.api.v1.models.responses import ERROR_RESPONSES


router = APIRouter(
    prefix="/exports",
    tags=["exports"],
)

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
    "geojson": "application/geo+json",
}


def _attachment(content: str, filename: str, fmt: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/radius.csv",
    summary="Export the radius query result",
    responses={
        404: {"description": "No radius result is currently shown"},
        **ERROR_RESPONSES,
    },
)
async def export_radius_result(dashboard: DashboardDep) -> Response:
    content = dashboard.export_radius_result()
    if content is None:
        raise HTTPException(status_code=404, detail="No radius query result to export")
    return _attachment(content, "radius_query.csv", "csv")


@router.get(
    "/stands.{fmt}",
    summary="Export the filtered stands",
    description="Download the stands matching the active filter as CSV, JSON or GeoJSON.",
    responses=ERROR_RESPONSES,
)
async def export_stands(
    fmt: Annotated[Literal["csv", "json", "geojson"], Path(description="Export format")],
    dashboard: DashboardDep,
) -> Response:
    return _attachment(dashboard.export_stands(fmt), f"stands.{fmt}", fmt)
