"""
Scopes Router - Presentation Layer

Per-scope endpoints: retraining jobs, the active model, the model history
and the drift signal. A scope is written ``entity:<id>`` or
``cluster:<id>``; a bare id is an entity scope.
"""

from typing import List, Optional

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from retail_forecast.application.dtos.drift_dto import DriftSignalDTO
from retail_forecast.application.dtos.model_dto import ModelArtifactResponseDTO
from retail_forecast.application.dtos.training_dto import (
    TrainingJobDTO,
    TrainingRequestDTO,
    TrainingTriggerResponseDTO,
)
from retail_forecast.application.use_cases.catalog_use_cases import (
    GetActiveModelUseCase,
    ListScopeModelsUseCase,
)
from retail_forecast.application.use_cases.pipeline_use_cases import (
    CancelTrainingUseCase,
    GetDriftSignalUseCase,
    ListTrainingJobsUseCase,
    StartTrainingUseCase,
)
from retail_forecast.domain.entities.errors import DomainError

from .errors import internal_error, to_http_exception

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/scopes", tags=["Scopes"])


@router.post(
    "/{scope}/training",
    response_model=TrainingTriggerResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
@inject
async def start_training(
    scope: str,
    request: Optional[TrainingRequestDTO] = Body(default=None),
    start_training_use_case: StartTrainingUseCase = Depends(
        Provide["start_training_use_case"]
    ),
) -> TrainingTriggerResponseDTO:
    """Trigger a manual retraining (bypasses the manual-review flag)."""
    try:
        return await start_training_use_case.execute(
            scope, request or TrainingRequestDTO()
        )
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("scopes.training.start_failed", scope=scope, error=str(e))
        raise internal_error()


@router.delete("/{scope}/training", status_code=status.HTTP_204_NO_CONTENT)
@inject
async def cancel_training(
    scope: str,
    cancel_training_use_case: CancelTrainingUseCase = Depends(
        Provide["cancel_training_use_case"]
    ),
) -> None:
    """Cancel the running job; the active model is left untouched."""
    try:
        cancelled = await cancel_training_use_case.execute(scope)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("scopes.training.cancel_failed", scope=scope, error=str(e))
        raise internal_error()
    if not cancelled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No retraining job running for scope '{scope}'",
        )


@router.get("/{scope}/training", response_model=List[TrainingJobDTO])
@inject
async def list_training_jobs(
    scope: str,
    limit: int = Query(20, ge=1, le=200),
    list_training_jobs_use_case: ListTrainingJobsUseCase = Depends(
        Provide["list_training_jobs_use_case"]
    ),
) -> List[TrainingJobDTO]:
    try:
        return await list_training_jobs_use_case.execute(scope, limit=limit)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("scopes.training.list_failed", scope=scope, error=str(e))
        raise internal_error()


@router.get("/{scope}/active", response_model=ModelArtifactResponseDTO)
@inject
async def get_active_model(
    scope: str,
    get_active_model_use_case: GetActiveModelUseCase = Depends(
        Provide["get_active_model_use_case"]
    ),
) -> ModelArtifactResponseDTO:
    try:
        return await get_active_model_use_case.execute(scope)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("scopes.active.failed", scope=scope, error=str(e))
        raise internal_error()


@router.get("/{scope}/models", response_model=List[ModelArtifactResponseDTO])
@inject
async def list_scope_models(
    scope: str,
    list_scope_models_use_case: ListScopeModelsUseCase = Depends(
        Provide["list_scope_models_use_case"]
    ),
) -> List[ModelArtifactResponseDTO]:
    try:
        return await list_scope_models_use_case.execute(scope)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("scopes.models.failed", scope=scope, error=str(e))
        raise internal_error()


@router.get("/{scope}/drift", response_model=DriftSignalDTO)
@inject
async def get_drift_signal(
    scope: str,
    get_drift_signal_use_case: GetDriftSignalUseCase = Depends(
        Provide["get_drift_signal_use_case"]
    ),
) -> DriftSignalDTO:
    try:
        return await get_drift_signal_use_case.execute(scope)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("scopes.drift.failed", scope=scope, error=str(e))
        raise internal_error()
