"""
Dependency injection for FastAPI.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, Request, status

from forest_dashboard.services.application.dashboard_service import DashboardContext


def get_dashboard(request: Request) -> DashboardContext:
    """
    Dependency factory for the dashboard session.

    The session is created by the application lifespan and stored on
    app.state; nothing is cached at module level.

    Args:
        request: The incoming request

    Returns:
        DashboardContext instance

    Raises:
        HTTPException: If the application has not finished starting
    """
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dashboard session is not initialised",
        )
    return context


# Type aliases for cleaner route signatures
DashboardDep = Annotated[DashboardContext, Depends(get_dashboard)]
