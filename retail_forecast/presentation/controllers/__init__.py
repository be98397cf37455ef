"""
Controllers Package - Presentation Layer

This package contains FastAPI controllers (routers) that handle
HTTP requests and responses. Controllers are responsible for
input validation, error handling, and mapping between API DTOs
and application layer use cases.
"""

from .entities_controller import router as entities_router
from .forecasts_controller import router as forecasts_router
from .ingestion_controller import router as ingestion_router
from .models_controller import router as models_router
from .scopes_controller import router as scopes_router

__all__ = [
    "entities_router",
    "forecasts_router",
    "ingestion_router",
    "models_router",
    "scopes_router",
]
