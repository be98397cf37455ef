"""
Ingestion Router - Presentation Layer

Batch endpoints for feature records and actual observations. Both are
idempotent: resending a batch changes nothing.
"""

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, status

from retail_forecast.application.dtos.ingestion_dto import (
    FeatureBatchDTO,
    FeatureIngestionResponseDTO,
    ObservationBatchDTO,
    ObservationIngestionResponseDTO,
)
from retail_forecast.application.use_cases.pipeline_use_cases import (
    IngestFeaturesUseCase,
    IngestObservationsUseCase,
)
from retail_forecast.domain.entities.errors import DomainError

from .errors import internal_error, to_http_exception

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/ingest", tags=["Ingestion"])


@router.post(
    "/features",
    response_model=FeatureIngestionResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
)
@inject
async def ingest_features(
    batch: FeatureBatchDTO,
    ingest_features_use_case: IngestFeaturesUseCase = Depends(
        Provide["ingest_features_use_case"]
    ),
) -> FeatureIngestionResponseDTO:
    """Append feature records; unknown entities are registered on first write."""
    try:
        return await ingest_features_use_case.execute(batch)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("ingest.features.failed", records=len(batch.records), error=str(e))
        raise internal_error()


@router.post("/observations", response_model=ObservationIngestionResponseDTO)
@inject
async def ingest_observations(
    batch: ObservationBatchDTO,
    ingest_observations_use_case: IngestObservationsUseCase = Depends(
        Provide["ingest_observations_use_case"]
    ),
) -> ObservationIngestionResponseDTO:
    """Store actuals and pair new ones with their predictions."""
    try:
        return await ingest_observations_use_case.execute(batch)
    except DomainError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(
            "ingest.observations.failed",
            observations=len(batch.observations),
            error=str(e),
        )
        raise internal_error()
