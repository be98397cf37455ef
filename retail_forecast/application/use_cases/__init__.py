"""Application use cases."""

from .catalog_use_cases import (
    AmendHierarchyUseCase,
    GetActiveModelUseCase,
    GetEntityUseCase,
    GetModelUseCase,
    ListScopeModelsUseCase,
    PromoteModelUseCase,
    RegisterEntityUseCase,
)
from .drift_monitor import DriftMonitor
from .forecast_engine import ForecastEngine
from .ingestion import IngestionService, ObservationIngestionResult
from .pipeline_use_cases import (
    CancelTrainingUseCase,
    ForecastUseCase,
    GetDriftSignalUseCase,
    IngestFeaturesUseCase,
    IngestObservationsUseCase,
    ListTrainingJobsUseCase,
    StartTrainingUseCase,
)
from .retraining_scheduler import RetrainingScheduler, SweepSummary
from .serving import ServingGateway

__all__ = [
    "AmendHierarchyUseCase",
    "CancelTrainingUseCase",
    "DriftMonitor",
    "ForecastEngine",
    "ForecastUseCase",
    "GetActiveModelUseCase",
    "GetDriftSignalUseCase",
    "GetEntityUseCase",
    "GetModelUseCase",
    "IngestFeaturesUseCase",
    "IngestObservationsUseCase",
    "IngestionService",
    "ListScopeModelsUseCase",
    "ListTrainingJobsUseCase",
    "ObservationIngestionResult",
    "PromoteModelUseCase",
    "RegisterEntityUseCase",
    "RetrainingScheduler",
    "ServingGateway",
    "StartTrainingUseCase",
    "SweepSummary",
]
