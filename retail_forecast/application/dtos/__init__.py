"""Application DTOs."""

from .drift_dto import DriftSignalDTO
from .entity_dto import EntityCreateDTO, EntityResponseDTO, HierarchyUpdateDTO
from .ingestion_dto import (
    FeatureBatchDTO,
    FeatureIngestionResponseDTO,
    FeatureRecordDTO,
    ObservationBatchDTO,
    ObservationDTO,
    ObservationIngestionResponseDTO,
)
from .model_dto import (
    HyperparametersDTO,
    ModelArtifactResponseDTO,
    PromoteRequestDTO,
    TimeRangeDTO,
)
from .prediction_dto import ConfidenceIntervalDTO, PredictionResponseDTO
from .training_dto import TrainingJobDTO, TrainingRequestDTO, TrainingTriggerResponseDTO

__all__ = [
    "ConfidenceIntervalDTO",
    "DriftSignalDTO",
    "EntityCreateDTO",
    "EntityResponseDTO",
    "FeatureBatchDTO",
    "FeatureIngestionResponseDTO",
    "FeatureRecordDTO",
    "HierarchyUpdateDTO",
    "HyperparametersDTO",
    "ModelArtifactResponseDTO",
    "ObservationBatchDTO",
    "ObservationDTO",
    "ObservationIngestionResponseDTO",
    "PredictionResponseDTO",
    "PromoteRequestDTO",
    "TimeRangeDTO",
    "TrainingJobDTO",
    "TrainingRequestDTO",
    "TrainingTriggerResponseDTO",
]
