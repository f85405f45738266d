"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from forest_dashboard.config import settings
from forest_dashboard.infrastructure.errors import FetchError
from forest_dashboard.middleware.error_handler import ErrorHandlerMiddleware
from forest_dashboard.api.v1.routers import exports, maps, stands, statistics
from forest_dashboard.services.application.dashboard_service import DashboardContext

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_requests}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Creates the dashboard session, starts the map server probe and loads
    the initial stand collection. A failed initial load is logged; the
    collection can be reloaded later.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Stands API: {settings.stands_api_base_url}, GeoServer: {settings.geoserver_url}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    context = DashboardContext(settings)
    context.startup()
    try:
        await context.load_stands()
    except FetchError as e:
        context.last_load_error = e.message
        logger.error(f"Initial stand load failed: {e}")
    app.state.context = context

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await context.shutdown()
    app.state.context = None
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Forest Stand Dashboard API

    Session service behind the forestry management dashboard. It keeps the
    map, layer and popup state, resolves map clicks into stand queries and
    serves chart-ready statistics of the filtered stand collection.

    ## Features

    - **Stand inspection**: Local marker hit-testing with a map server
      probe fallback around the click
    - **Radius queries**: All stands within a chosen distance, sorted by
      distance, with area and volume totals
    - **Filtering**: One attribute filter applied to tiles, markers and
      statistics alike
    - **Statistics**: Species and origin breakdowns, volume, age and
      density distributions and a growth projection
    - **Exports**: CSV, JSON and GeoJSON downloads
    - **Robust Error Handling**: Automatic retries with exponential backoff
      for transport failures
    - **Rate Limiting**: Protects the API from abuse
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(stands.router, prefix="/api/v1")
app.include_router(maps.router, prefix="/api/v1")
app.include_router(statistics.router, prefix="/api/v1")
app.include_router(exports.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Reports map server degradation when a session is running.

    Returns:
        Health status
    """
    context = getattr(app.state, "context", None)
    return {
        "status": "healthy",
        "service": settings.app_name,
        "map_server_degraded": context.layers.service_degraded if context is not None else None,
    }
