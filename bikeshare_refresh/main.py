from contextlib import asynccontextmanager

from fastapi import FastAPI

from bikeshare_refresh.core.config import settings
from bikeshare_refresh.core.init_db import init_db
from bikeshare_refresh.core.logging import setup_logging
from bikeshare_refresh.routers.health import router as health_router
from bikeshare_refresh.routers.refresh import router as refresh_router
from bikeshare_refresh.routers.stations import router as stations_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    On startup, configures logging and creates missing tables
    (development setup). Nothing to release on shutdown.
    """
    setup_logging(settings.log_level)
    await init_db()
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        description="Bikeshare station refresh: stale network detection and station upserts",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Register API routers
    app.include_router(health_router)
    app.include_router(refresh_router)
    app.include_router(stations_router)

    return app


# Application entry point
app = create_app()
