"""In-memory implementations of the domain repositories."""

from .artifact_blob_store import InMemoryArtifactBlobStore
from .drift_state_repository import InMemoryDriftStateRepository
from .feature_store import InMemoryFeatureStore
from .model_registry import InMemoryModelRegistry
from .prediction_repository import (
    InMemoryObservationRepository,
    InMemoryPredictionRepository,
)
from .training_job_repository import InMemoryTrainingJobRepository

__all__ = [
    "InMemoryArtifactBlobStore",
    "InMemoryDriftStateRepository",
    "InMemoryFeatureStore",
    "InMemoryModelRegistry",
    "InMemoryObservationRepository",
    "InMemoryPredictionRepository",
    "InMemoryTrainingJobRepository",
]
