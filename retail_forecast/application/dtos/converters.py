"""
Application DTOs - Converters

Mapping from domain entities to response DTOs. Non-finite floats (a NaN
back-test error when a holdout had no usable rows) are reported as null.
"""

import math
from typing import Any, Dict, Optional

from retail_forecast.domain.entities.drift import DriftSignal
from retail_forecast.domain.entities.entity import Entity
from retail_forecast.domain.entities.model_artifact import ModelArtifact
from retail_forecast.domain.entities.prediction import Prediction
from retail_forecast.domain.entities.training_job import TrainingJob

from .drift_dto import DriftSignalDTO
from .entity_dto import EntityResponseDTO
from .model_dto import HyperparametersDTO, ModelArtifactResponseDTO, TimeRangeDTO
from .prediction_dto import ConfidenceIntervalDTO, PredictionResponseDTO
from .training_dto import TrainingJobDTO


def finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def _clean_metrics(metrics: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for name, value in metrics.items():
        if isinstance(value, float):
            cleaned[name] = finite_or_none(value)
        elif isinstance(value, dict):
            cleaned[name] = _clean_metrics(value)
        else:
            cleaned[name] = value
    return cleaned


def to_entity_dto(entity: Entity) -> EntityResponseDTO:
    return EntityResponseDTO(
        entity_id=entity.entity_id,
        hierarchy=list(entity.hierarchy),
        active=entity.active,
        frequency_seconds=entity.frequency_seconds,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )


def to_artifact_dto(artifact: ModelArtifact) -> ModelArtifactResponseDTO:
    return ModelArtifactResponseDTO(
        model_id=artifact.model_id,
        entity_scope=str(artifact.entity_scope),
        version=artifact.version,
        model_type=artifact.model_type,
        status=artifact.status,
        training_window=TimeRangeDTO(
            start=artifact.training_window.start, end=artifact.training_window.end
        ),
        hyperparameters=HyperparametersDTO(**artifact.hyperparameters.to_dict()),
        metrics=_clean_metrics(artifact.metrics),
        member_entities=list(artifact.member_entities),
        fallback_from=artifact.fallback_from,
        created_at=artifact.created_at,
        promoted_at=artifact.promoted_at,
        retired_at=artifact.retired_at,
    )


def to_prediction_dto(prediction: Prediction) -> PredictionResponseDTO:
    interval = prediction.confidence_interval
    return PredictionResponseDTO(
        prediction_id=prediction.prediction_id,
        model_id=prediction.model_id,
        entity_scope=prediction.entity_scope,
        entity_id=prediction.entity_id,
        target_timestamp=prediction.target_timestamp,
        predicted_value=prediction.predicted_value,
        confidence_interval=ConfidenceIntervalDTO(
            lower=interval.lower, upper=interval.upper, coverage=interval.coverage
        ),
        generated_at=prediction.generated_at,
    )


def to_drift_signal_dto(signal: DriftSignal) -> DriftSignalDTO:
    return DriftSignalDTO(
        entity_scope=signal.entity_scope,
        status=signal.status,
        error_metric=signal.error_metric,
        value=finite_or_none(signal.value),
        threshold=signal.threshold,
        window_start=signal.window_start,
        window_end=signal.window_end,
        model_id=signal.model_id,
    )


def to_training_job_dto(job: TrainingJob) -> TrainingJobDTO:
    return TrainingJobDTO(
        id=job.id,
        entity_scope=job.entity_scope,
        reason=job.reason,
        status=job.status,
        candidate_model_id=job.candidate_model_id,
        candidate_scope=job.candidate_scope,
        candidate_error=finite_or_none(job.candidate_error),
        incumbent_model_id=job.incumbent_model_id,
        incumbent_error=finite_or_none(job.incumbent_error),
        promoted=job.promoted,
        start_time=job.start_time,
        end_time=job.end_time,
        created_at=job.created_at,
        error=job.error,
        error_details=job.error_details,
    )
