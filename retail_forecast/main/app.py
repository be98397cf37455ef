"""
Main Application - Main Layer

This module serves as the entry point for the FastAPI application.
It initializes the container, creates the FastAPI app, and includes
the API routers.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from retail_forecast.main.config import AppSettings, get_settings
from retail_forecast.main.container import app_lifespan, init_container
from retail_forecast.presentation.controllers import (
    entities_router,
    forecasts_router,
    ingestion_router,
    models_router,
    scopes_router,
)
from retail_forecast.shared import (
    configure_logging,
    get_logger,
    update_logging_from_settings,
)

# Configure logging with basic settings first - before configuration is loaded
configure_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan management.

    Resources are opened on startup and released on shutdown through the
    container's app_lifespan.
    """
    app.state.started_at = datetime.now(timezone.utc)
    logger.info("Application starting up")

    async with app_lifespan(run_sweep=app.state.run_sweep) as container:
        app.state.container = container
        yield

    logger.info("Application shutting down")


def create_app(
    settings: Optional[AppSettings] = None, run_sweep: bool = True
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when None
        run_sweep: Run the periodic retraining sweep in this process

    Returns:
        FastAPI: The configured FastAPI application
    """
    settings = settings or get_settings()
    update_logging_from_settings(settings)

    # Initialize dependency injection container
    container = init_container(settings)

    app = FastAPI(
        title=settings.service.title,
        description=settings.service.description,
        version=settings.service.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.run_sweep = run_sweep

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(entities_router)
    app.include_router(ingestion_router)
    app.include_router(forecasts_router)
    app.include_router(scopes_router)
    app.include_router(models_router)

    return app
