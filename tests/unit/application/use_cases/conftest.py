from __future__ import annotations

from types import SimpleNamespace

import pytest

from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.application.use_cases.forecast_engine import ForecastEngine
from retail_forecast.application.use_cases.ingestion import IngestionService
from retail_forecast.application.use_cases.serving import ServingGateway
from retail_forecast.infrastructure.locks import LocalScopeLock
from retail_forecast.infrastructure.memory import (
    InMemoryDriftStateRepository,
    InMemoryFeatureStore,
    InMemoryModelRegistry,
    InMemoryObservationRepository,
    InMemoryPredictionRepository,
    InMemoryTrainingJobRepository,
)


@pytest.fixture()
def stack(alert_sink) -> SimpleNamespace:
    """In-memory pipeline: stores, engine, drift monitor, serving and ingestion."""
    feature_store = InMemoryFeatureStore()
    registry = InMemoryModelRegistry()
    predictions = InMemoryPredictionRepository()
    observations = InMemoryObservationRepository()
    drift_states = InMemoryDriftStateRepository()
    engine = ForecastEngine(feature_store, min_samples=30)
    drift_monitor = DriftMonitor(
        drift_states,
        alert_sink,
        window_size=5,
        threshold_low=0.10,
        threshold_high=0.20,
        consecutive_windows=2,
    )
    serving = ServingGateway(
        feature_store=feature_store,
        registry=registry,
        engine=engine,
        prediction_repository=predictions,
        observation_repository=observations,
        drift_monitor=drift_monitor,
        alert_sink=alert_sink,
    )
    ingestion = IngestionService(
        feature_store,
        observations,
        serving,
        max_retries=2,
        backoff_base_seconds=0.0,
        backoff_max_seconds=0.0,
    )
    return SimpleNamespace(
        feature_store=feature_store,
        registry=registry,
        predictions=predictions,
        observations=observations,
        drift_states=drift_states,
        engine=engine,
        drift_monitor=drift_monitor,
        serving=serving,
        ingestion=ingestion,
        jobs=InMemoryTrainingJobRepository(),
        scope_lock=LocalScopeLock(),
        alerts=alert_sink,
    )
