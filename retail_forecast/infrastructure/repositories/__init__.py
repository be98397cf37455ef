"""
Repositories Package - Infrastructure Layer

MongoDB implementations of the domain repository interfaces.
"""

from .drift_state_repository import MongoDriftStateRepository
from .feature_store import MongoFeatureStore
from .gridfs_artifact_blob_store import GridFSArtifactBlobStore
from .model_registry import MongoModelRegistry
from .prediction_repository import MongoObservationRepository, MongoPredictionRepository
from .training_job_repository import TrainingJobRepository

__all__ = [
    "GridFSArtifactBlobStore",
    "MongoDriftStateRepository",
    "MongoFeatureStore",
    "MongoModelRegistry",
    "MongoObservationRepository",
    "MongoPredictionRepository",
    "TrainingJobRepository",
]
