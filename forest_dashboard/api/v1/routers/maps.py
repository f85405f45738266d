"""
API router for map interaction endpoints.
"""
from fastapi import APIRouter, HTTPException, Path
from typing import Annotated, Any

from forest_dashboard.api.dependencies import DashboardDep
from forest_dashboard.api.v1.models.requests import (
    LayerUpdateRequest,
    MapClickRequest,
    RadiusModeRequest,
    StandFilterRequest,
    ViewUpdateRequest,
)
from forest_dashboard.api.v1.models.responses import (
    ERROR_RESPONSES,
    FilterResponse,
    HighlightResponse,
    LayerResponse,
    QueryResponse,
    RadiusModeResponse,
)
from forest_dashboard.domain.models import StandFilter
from forest_dashboard.services.domain.map_view import ViewState


router = APIRouter(
    prefix="/map",
    tags=["map"],
)


def _filter_response(dashboard) -> FilterResponse:
    return FilterResponse(
        filter=dashboard.stand_filter,
        cql_filter=dashboard.stand_filter.to_cql(),
        filtered_count=len(dashboard.filtered_stands()),
    )


def _radius_mode_response(dashboard) -> RadiusModeResponse:
    coordinator = dashboard.coordinator
    return RadiusModeResponse(
        mode=coordinator.mode.value,
        radius=coordinator.radius,
        radius_options=coordinator.radius_options,
    )


@router.get(
    "/state",
    summary="Dashboard map state",
    description="View, layers, popup, overlays and filter as the front-end should render them.",
    responses=ERROR_RESPONSES,
)
async def map_state(dashboard: DashboardDep) -> dict[str, Any]:
    return dashboard.snapshot()


@router.put(
    "/view",
    response_model=ViewState,
    summary="Update the viewport",
    description="Record the centre and zoom the front-end is showing.",
    responses=ERROR_RESPONSES,
)
async def update_view(payload: ViewUpdateRequest, dashboard: DashboardDep) -> ViewState:
    dashboard.view.zoom_to(payload.lon, payload.lat, payload.zoom)
    return dashboard.view.snapshot()


@router.post(
    "/click",
    response_model=QueryResponse,
    summary="Handle a map click",
    description="""
    Resolve a click on the map.

    In inspect mode the nearest rendered marker is used when one lies
    within the hit tolerance; otherwise the map server is probed around
    the click. A reported zoom updates the viewport first, so the hit
    tolerance and probe area match what the user sees. In radius query
    mode all stands within the configured radius are returned with their
    distances.
    """,
    responses=ERROR_RESPONSES,
)
async def click(payload: MapClickRequest, dashboard: DashboardDep) -> QueryResponse:
    if payload.zoom is not None:
        dashboard.view.set_zoom(payload.zoom)
    result = await dashboard.coordinator.handle_click(payload.lon, payload.lat)
    return QueryResponse(result=result)


@router.post(
    "/layers/{name}",
    response_model=LayerResponse,
    summary="Update a layer",
    responses={
        404: {"description": "Unknown layer"},
        **ERROR_RESPONSES,
    },
)
async def update_layer(
    name: Annotated[str, Path(description="Layer name")],
    payload: LayerUpdateRequest,
    dashboard: DashboardDep,
) -> LayerResponse:
    layers = dashboard.layers
    if name not in layers.layers:
        raise HTTPException(status_code=404, detail=f"Layer '{name}' not found")
    if payload.opacity is not None:
        layers.set_opacity(name, payload.opacity)
    if payload.visible is not None or payload.opacity is None:
        await layers.toggle_layer(name, payload.visible)

    layer = layers.get_layer(name)
    return LayerResponse(
        name=name,
        visible=layers.stands_visible if name == "stands" else layer.visible,
        opacity=layer.opacity,
        service_degraded=layers.service_degraded,
    )


@router.put(
    "/filter",
    response_model=FilterResponse,
    summary="Apply a stand filter",
    responses=ERROR_RESPONSES,
)
async def apply_filter(payload: StandFilterRequest, dashboard: DashboardDep) -> FilterResponse:
    dashboard.apply_filter(StandFilter(**payload.model_dump()))
    return _filter_response(dashboard)


@router.delete(
    "/filter",
    response_model=FilterResponse,
    summary="Clear the stand filter",
    responses=ERROR_RESPONSES,
)
async def clear_filter(dashboard: DashboardDep) -> FilterResponse:
    dashboard.apply_filter(None)
    return _filter_response(dashboard)


@router.post(
    "/radius-mode",
    response_model=RadiusModeResponse,
    summary="Enter radius query mode",
    responses=ERROR_RESPONSES,
)
async def enter_radius_mode(payload: RadiusModeRequest, dashboard: DashboardDep) -> RadiusModeResponse:
    dashboard.coordinator.enter_radius_mode(payload.radius)
    return _radius_mode_response(dashboard)


@router.delete(
    "/radius-mode",
    response_model=RadiusModeResponse,
    summary="Leave radius query mode",
    responses=ERROR_RESPONSES,
)
async def exit_radius_mode(dashboard: DashboardDep) -> RadiusModeResponse:
    dashboard.coordinator.exit_radius_mode()
    return _radius_mode_response(dashboard)


@router.post(
    "/highlight/{stand_id}",
    response_model=HighlightResponse,
    summary="Highlight a stand",
    description="Transiently outline a stand, e.g. after picking it from a list result.",
    responses=ERROR_RESPONSES,
)
async def highlight(
    stand_id: Annotated[str, Path(description="Stand identifier")],
    dashboard: DashboardDep,
) -> HighlightResponse:
    overlay = await dashboard.layers.highlight(stand_id)
    return HighlightResponse(
        stand_id=stand_id,
        highlighted=overlay is not None,
        overlay=overlay.model_dump() if overlay is not None else None,
    )


@router.post(
    "/popup/select/{stand_id}",
    response_model=QueryResponse,
    summary="Select a candidate from a list result",
    responses=ERROR_RESPONSES,
)
async def select_candidate(
    stand_id: Annotated[str, Path(description="Stand identifier")],
    dashboard: DashboardDep,
) -> QueryResponse:
    result = await dashboard.coordinator.select_candidate(stand_id)
    return QueryResponse(result=result)


@router.delete(
    "/popup",
    summary="Close the popup",
    responses=ERROR_RESPONSES,
)
async def close_popup(dashboard: DashboardDep) -> dict[str, Any]:
    dashboard.popup.close()
    return dashboard.popup.snapshot()
