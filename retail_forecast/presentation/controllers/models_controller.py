"""
Models Router - Presentation Layer

This module defines the FastAPI router for model artifact endpoints.
"""

from typing import Optional

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Body, Depends

from retail_forecast.application.dtos.model_dto import (
    ModelArtifactResponseDTO,
    PromoteRequestDTO,
)
from retail_forecast.application.use_cases.catalog_use_cases import (
    GetModelUseCase,
    PromoteModelUseCase,
)
from retail_forecast.domain.entities.errors import DomainError

from .errors import internal_error, to_http_exception

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/models", tags=["Models"])


@router.get("/{model_id}", response_model=ModelArtifactResponseDTO)
@inject
async def get_model(
    model_id: str,
    get_model_use_case: GetModelUseCase = Depends(Provide["get_model_use_case"]),
) -> ModelArtifactResponseDTO:
    """Get the metadata of a model artifact."""
    try:
        return await get_model_use_case.execute(model_id)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("models.get.failed", model_id=model_id, error=str(e))
        raise internal_error()


@router.post(
    "/{model_id}/promote",
    response_model=ModelArtifactResponseDTO,
    responses={409: {"description": "The active model changed concurrently"}},
)
@inject
async def promote_model(
    model_id: str,
    request: Optional[PromoteRequestDTO] = Body(default=None),
    promote_model_use_case: PromoteModelUseCase = Depends(
        Provide["promote_model_use_case"]
    ),
) -> ModelArtifactResponseDTO:
    """
    Make a candidate (or, as a rollback, a retired model) the active model.

    The swap only happens if the scope's active model is still the one the
    caller expects; otherwise 409 is returned and nothing changes.
    """
    try:
        return await promote_model_use_case.execute(
            model_id, request or PromoteRequestDTO()
        )
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("models.promote.failed", model_id=model_id, error=str(e))
        raise internal_error()
