"""
Entities Router - Presentation Layer

This module defines the FastAPI router for the entity catalogue.
"""

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, status

from retail_forecast.application.dtos.entity_dto import (
    EntityCreateDTO,
    EntityResponseDTO,
    HierarchyUpdateDTO,
)
from retail_forecast.application.use_cases.catalog_use_cases import (
    AmendHierarchyUseCase,
    GetEntityUseCase,
    RegisterEntityUseCase,
)
from retail_forecast.domain.entities.errors import DomainError

from .errors import internal_error, to_http_exception

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/entities", tags=["Entities"])


@router.post(
    "",
    response_model=EntityResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
@inject
async def register_entity(
    entity_dto: EntityCreateDTO,
    register_entity_use_case: RegisterEntityUseCase = Depends(
        Provide["register_entity_use_case"]
    ),
) -> EntityResponseDTO:
    """Register a region x category entity and its cluster path."""
    try:
        return await register_entity_use_case.execute(entity_dto)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(
            "entities.register.failed", entity_id=entity_dto.entity_id, error=str(e)
        )
        raise internal_error()


@router.get("/{entity_id}", response_model=EntityResponseDTO)
@inject
async def get_entity(
    entity_id: str,
    get_entity_use_case: GetEntityUseCase = Depends(Provide["get_entity_use_case"]),
) -> EntityResponseDTO:
    try:
        return await get_entity_use_case.execute(entity_id)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("entities.get.failed", entity_id=entity_id, error=str(e))
        raise internal_error()


@router.patch("/{entity_id}/hierarchy", response_model=EntityResponseDTO)
@inject
async def amend_hierarchy(
    entity_id: str,
    hierarchy_dto: HierarchyUpdateDTO,
    amend_hierarchy_use_case: AmendHierarchyUseCase = Depends(
        Provide["amend_hierarchy_use_case"]
    ),
) -> EntityResponseDTO:
    """
    Change the clusters an entity belongs to.

    Existing models are kept; the new path applies to future training
    fallback and to serving resolution.
    """
    try:
        return await amend_hierarchy_use_case.execute(entity_id, hierarchy_dto)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("entities.hierarchy.failed", entity_id=entity_id, error=str(e))
        raise internal_error()
