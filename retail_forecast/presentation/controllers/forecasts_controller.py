"""
Forecasts Router - Presentation Layer

Serves point forecasts with confidence intervals from the active model
resolved along the entity's scope chain.
"""

from datetime import datetime
from typing import Optional

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from retail_forecast.application.dtos.prediction_dto import PredictionResponseDTO
from retail_forecast.application.use_cases.pipeline_use_cases import ForecastUseCase
from retail_forecast.domain.entities.errors import DomainError

from .errors import internal_error, to_http_exception

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/forecasts", tags=["Forecasts"])


@router.get(
    "/{entity_id}",
    response_model=PredictionResponseDTO,
    responses={
        404: {"description": "Unknown entity"},
        409: {"description": "No active model along the entity's scope chain"},
        422: {"description": "A regressor is missing at the target timestamp"},
    },
)
@inject
async def get_forecast(
    entity_id: str,
    target_timestamp: datetime = Query(..., description="Timestamp to forecast"),
    coverage: Optional[float] = Query(
        None, gt=0.0, lt=1.0, description="Nominal interval coverage"
    ),
    forecast_use_case: ForecastUseCase = Depends(Provide["forecast_use_case"]),
) -> PredictionResponseDTO:
    try:
        return await forecast_use_case.execute(entity_id, target_timestamp, coverage)
    except DomainError as e:
        logger.info(
            "forecasts.rejected",
            entity_id=entity_id,
            error=type(e).__name__,
            message=e.message,
        )
        raise to_http_exception(e)
    except Exception as e:
        logger.error("forecasts.failed", entity_id=entity_id, error=str(e))
        raise internal_error()
