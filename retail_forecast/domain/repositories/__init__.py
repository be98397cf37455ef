"""
Repositories Package

Interfaces defining the data access contracts of the pipeline. Concrete
MongoDB and in-memory implementations live in the infrastructure layer.
"""

from .artifact_blob_store import IArtifactBlobStore
from .drift_state_repository import IDriftStateRepository
from .feature_store import IFeatureStore
from .model_registry import READ_CURRENT, IModelRegistry
from .prediction_repository import IObservationRepository, IPredictionRepository
from .training_job_repository import ITrainingJobRepository

__all__ = [
    "READ_CURRENT",
    "IArtifactBlobStore",
    "IDriftStateRepository",
    "IFeatureStore",
    "IModelRegistry",
    "IObservationRepository",
    "IPredictionRepository",
    "ITrainingJobRepository",
]
