"""
Domain Entities Package

This package contains the core domain entities and business rules of the
forecasting pipeline, free of framework and storage dependencies.
"""

from .drift import AlertEvent, DriftSignal, DriftState, DriftStatus
from .entity import Entity, EntityScope, ScopeKind
from .errors import (
    AlertDeliveryError,
    ConcurrentPromotionConflict,
    DomainError,
    MissingRegressorError,
    ModelStateError,
    NoActiveModelError,
    NotFoundError,
    TrainingFailure,
    TransientStorageError,
    ValidationError,
)
from .feature import MISSING, FeatureRecord, FeatureRow, FeatureValueRecord, TimeRange
from .model_artifact import (
    ArtifactStatus,
    ModelArtifact,
    ModelHyperparameters,
    ModelType,
)
from .prediction import ActualObservation, ConfidenceInterval, Prediction
from .training_job import TrainingJob, TrainingReason, TrainingStatus

__all__ = [
    "MISSING",
    "ActualObservation",
    "AlertDeliveryError",
    "AlertEvent",
    "ArtifactStatus",
    "ConcurrentPromotionConflict",
    "ConfidenceInterval",
    "DomainError",
    "DriftSignal",
    "DriftState",
    "DriftStatus",
    "Entity",
    "EntityScope",
    "FeatureRecord",
    "FeatureRow",
    "FeatureValueRecord",
    "MissingRegressorError",
    "ModelArtifact",
    "ModelHyperparameters",
    "ModelStateError",
    "ModelType",
    "NoActiveModelError",
    "NotFoundError",
    "Prediction",
    "ScopeKind",
    "TimeRange",
    "TrainingFailure",
    "TrainingJob",
    "TrainingReason",
    "TrainingStatus",
    "TransientStorageError",
    "ValidationError",
]
