"""
Dependency container injection module - Main Layer

This module implements the dependency injection container
to simplify the management and lifecycle of dependencies
in the application.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Optional

from dependency_injector import containers, providers

from retail_forecast.application.forecasting.factory import ModelCache
from retail_forecast.application.use_cases.catalog_use_cases import (
    AmendHierarchyUseCase,
    GetActiveModelUseCase,
    GetEntityUseCase,
    GetModelUseCase,
    ListScopeModelsUseCase,
    PromoteModelUseCase,
    RegisterEntityUseCase,
)
from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.application.use_cases.forecast_engine import ForecastEngine
from retail_forecast.application.use_cases.ingestion import IngestionService
from retail_forecast.application.use_cases.pipeline_use_cases import (
    CancelTrainingUseCase,
    ForecastUseCase,
    GetDriftSignalUseCase,
    IngestFeaturesUseCase,
    IngestObservationsUseCase,
    ListTrainingJobsUseCase,
    StartTrainingUseCase,
)
from retail_forecast.application.use_cases.retraining_scheduler import (
    RetrainingScheduler,
)
from retail_forecast.application.use_cases.serving import ServingGateway
from retail_forecast.domain.entities.errors import DomainError
from retail_forecast.domain.entities.model_artifact import ModelHyperparameters
from retail_forecast.domain.ports.alert_sink import IAlertSink
from retail_forecast.infrastructure.alerting import (
    FanOutAlertSink,
    LoggingAlertSink,
    WebhookAlertSink,
)
from retail_forecast.infrastructure.database import MongoDatabase
from retail_forecast.infrastructure.locks import LocalScopeLock, MongoScopeLock
from retail_forecast.infrastructure.memory import (
    InMemoryArtifactBlobStore,
    InMemoryDriftStateRepository,
    InMemoryFeatureStore,
    InMemoryModelRegistry,
    InMemoryObservationRepository,
    InMemoryPredictionRepository,
    InMemoryTrainingJobRepository,
)
from retail_forecast.infrastructure.repositories import (
    GridFSArtifactBlobStore,
    MongoDriftStateRepository,
    MongoFeatureStore,
    MongoModelRegistry,
    MongoObservationRepository,
    MongoPredictionRepository,
    TrainingJobRepository,
)
from retail_forecast.infrastructure.services.training_orchestrator import (
    CeleryRetrainingDispatcher,
)
from retail_forecast.shared import EnumDispatchMode, EnumStorageBackend, get_logger

from .config import AppSettings

logger = get_logger(__name__)


def _enum_value(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


def build_alert_sink(
    webhook_url: Optional[str],
    timeout_seconds: float,
    max_retries: int,
    backoff_base_seconds: float,
    backoff_max_seconds: float,
) -> IAlertSink:
    """Log every alert; also post it to the webhook when one is configured."""
    if not webhook_url:
        return LoggingAlertSink()
    return FanOutAlertSink(
        [
            LoggingAlertSink(),
            WebhookAlertSink(
                webhook_url,
                timeout=timeout_seconds,
                max_retries=max_retries,
                backoff_base_seconds=backoff_base_seconds,
                backoff_max_seconds=backoff_max_seconds,
            ),
        ]
    )


def build_dispatcher(
    dispatch_mode: Any, queue_name: str, scheduling_queue: str
) -> Optional[CeleryRetrainingDispatcher]:
    if _enum_value(dispatch_mode) != EnumDispatchMode.CELERY.value:
        return None
    return CeleryRetrainingDispatcher(
        queue_name=queue_name, scheduling_queue=scheduling_queue
    )


def _drift_monitor_provider(provider_type, config, state_repository, alert_sink):
    return provider_type(
        DriftMonitor,
        state_repository=state_repository,
        alert_sink=alert_sink,
        window_size=config.drift.window_size,
        threshold_low=config.drift.threshold_low,
        threshold_high=config.drift.threshold_high,
        consecutive_windows=config.drift.consecutive_windows,
        min_observations=config.drift.min_observations,
        denominator_floor=config.drift.denominator_floor,
        error_cap=config.drift.error_cap,
    )


def _scheduler_provider(provider_type, config, **dependencies):
    return provider_type(
        RetrainingScheduler,
        interval_seconds=config.scheduler.interval_seconds,
        min_margin=config.scheduler.min_margin,
        training_days=config.scheduler.training_days,
        holdout_days=config.scheduler.holdout_days,
        max_attempts=config.scheduler.max_attempts,
        max_model_age_seconds=config.scheduler.max_model_age_seconds,
        job_timeout_seconds=config.scheduler.job_timeout_seconds,
        **dependencies,
    )


class AppContainer(containers.DeclarativeContainer):
    """Composition Root using dependency-injector."""

    wiring_config = containers.WiringConfiguration(packages=["..presentation"])

    # Settings
    config = providers.Configuration()

    storage_backend = providers.Callable(_enum_value, config.database.storage_backend)

    # Infrastructure
    mongo_database = providers.Singleton(
        MongoDatabase,
        mongo_uri=config.database.mongo_uri,
        db_name=config.database.database_name,
        server_selection_timeout_ms=config.database.server_selection_timeout_ms,
    )

    artifact_blob_store = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(
            GridFSArtifactBlobStore,
            database=providers.Callable(lambda db: db.db, mongo_database),
        ),
        memory=providers.Singleton(InMemoryArtifactBlobStore),
    )

    feature_store = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(MongoFeatureStore, database=mongo_database),
        memory=providers.Singleton(InMemoryFeatureStore),
    )

    model_registry = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(
            MongoModelRegistry, database=mongo_database, blob_store=artifact_blob_store
        ),
        memory=providers.Singleton(InMemoryModelRegistry),
    )

    prediction_repository = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(MongoPredictionRepository, database=mongo_database),
        memory=providers.Singleton(InMemoryPredictionRepository),
    )

    observation_repository = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(MongoObservationRepository, database=mongo_database),
        memory=providers.Singleton(InMemoryObservationRepository),
    )

    drift_state_repository = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(MongoDriftStateRepository, database=mongo_database),
        memory=providers.Singleton(InMemoryDriftStateRepository),
    )

    training_job_repository = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(TrainingJobRepository, database=mongo_database),
        memory=providers.Singleton(InMemoryTrainingJobRepository),
    )

    scope_lock = providers.Selector(
        storage_backend,
        mongo=providers.Singleton(MongoScopeLock, database=mongo_database),
        memory=providers.Singleton(LocalScopeLock),
    )

    alert_sink = providers.Singleton(
        build_alert_sink,
        webhook_url=config.alert.webhook_url,
        timeout_seconds=config.alert.timeout_seconds,
        max_retries=config.alert.max_retries,
        backoff_base_seconds=config.alert.backoff_base_seconds,
        backoff_max_seconds=config.alert.backoff_max_seconds,
    )

    retraining_dispatcher = providers.Singleton(
        build_dispatcher,
        dispatch_mode=config.scheduler.dispatch_mode,
        queue_name=config.celery.retraining_queue,
        scheduling_queue=config.celery.scheduling_queue,
    )

    celery_dispatcher = providers.Singleton(
        CeleryRetrainingDispatcher,
        queue_name=config.celery.retraining_queue,
        scheduling_queue=config.celery.scheduling_queue,
    )

    # Application (services)
    model_cache = providers.Singleton(
        ModelCache, max_entries=config.forecast.model_cache_size
    )

    default_hyperparameters = providers.Factory(
        ModelHyperparameters,
        model_type=config.forecast.default_model_type,
        target_feature=config.forecast.target_feature,
        regressors=config.forecast.regressors,
        random_seed=config.forecast.random_seed,
    )

    forecast_engine = providers.Singleton(
        ForecastEngine,
        feature_store=feature_store,
        min_samples=config.forecast.min_samples,
        default_coverage=config.forecast.default_coverage,
        model_cache=model_cache,
    )

    drift_monitor = _drift_monitor_provider(
        providers.Singleton, config, drift_state_repository, alert_sink
    )

    serving_gateway = providers.Singleton(
        ServingGateway,
        feature_store=feature_store,
        registry=model_registry,
        engine=forecast_engine,
        prediction_repository=prediction_repository,
        observation_repository=observation_repository,
        drift_monitor=drift_monitor,
        alert_sink=alert_sink,
        max_model_age_seconds=config.scheduler.max_model_age_seconds,
    )

    ingestion_service = providers.Singleton(
        IngestionService,
        feature_store=feature_store,
        observation_repository=observation_repository,
        serving=serving_gateway,
        max_retries=config.ingest.max_retries,
        backoff_base_seconds=config.ingest.backoff_base_seconds,
        backoff_max_seconds=config.ingest.backoff_max_seconds,
    )

    retraining_scheduler = _scheduler_provider(
        providers.Singleton,
        config,
        registry=model_registry,
        engine=forecast_engine,
        job_repository=training_job_repository,
        drift_monitor=drift_monitor,
        scope_lock=scope_lock,
        alert_sink=alert_sink,
        default_hyperparameters=default_hyperparameters,
        dispatcher=retraining_dispatcher,
    )

    # Worker-side schedulers are built per task so asyncio primitives never
    # outlive the event loop of the task that created them.
    worker_scheduler = _scheduler_provider(
        providers.Factory,
        config,
        registry=model_registry,
        engine=forecast_engine,
        job_repository=training_job_repository,
        drift_monitor=_drift_monitor_provider(
            providers.Factory, config, drift_state_repository, alert_sink
        ),
        scope_lock=scope_lock,
        alert_sink=alert_sink,
        default_hyperparameters=default_hyperparameters,
        dispatcher=None,
    )

    sweep_scheduler = _scheduler_provider(
        providers.Factory,
        config,
        registry=model_registry,
        engine=forecast_engine,
        job_repository=training_job_repository,
        drift_monitor=_drift_monitor_provider(
            providers.Factory, config, drift_state_repository, alert_sink
        ),
        scope_lock=scope_lock,
        alert_sink=alert_sink,
        default_hyperparameters=default_hyperparameters,
        dispatcher=celery_dispatcher,
    )

    # Application (use cases)
    register_entity_use_case = providers.Factory(
        RegisterEntityUseCase, feature_store=feature_store
    )
    get_entity_use_case = providers.Factory(GetEntityUseCase, feature_store=feature_store)
    amend_hierarchy_use_case = providers.Factory(
        AmendHierarchyUseCase, feature_store=feature_store
    )
    get_model_use_case = providers.Factory(GetModelUseCase, registry=model_registry)
    list_scope_models_use_case = providers.Factory(
        ListScopeModelsUseCase, registry=model_registry
    )
    get_active_model_use_case = providers.Factory(
        GetActiveModelUseCase, registry=model_registry
    )
    promote_model_use_case = providers.Factory(
        PromoteModelUseCase, registry=model_registry, drift_monitor=drift_monitor
    )
    forecast_use_case = providers.Factory(ForecastUseCase, serving=serving_gateway)
    ingest_features_use_case = providers.Factory(
        IngestFeaturesUseCase, ingestion=ingestion_service
    )
    ingest_observations_use_case = providers.Factory(
        IngestObservationsUseCase, ingestion=ingestion_service
    )
    start_training_use_case = providers.Factory(
        StartTrainingUseCase, scheduler=retraining_scheduler
    )
    cancel_training_use_case = providers.Factory(
        CancelTrainingUseCase, scheduler=retraining_scheduler
    )
    list_training_jobs_use_case = providers.Factory(
        ListTrainingJobsUseCase, scheduler=retraining_scheduler
    )
    get_drift_signal_use_case = providers.Factory(
        GetDriftSignalUseCase, drift_monitor=drift_monitor
    )


# -------------------------
# Global Container Instance
# -------------------------
_app_container: AppContainer | None = None


def init_container(settings: AppSettings) -> AppContainer:
    """Initialize global container with application settings."""

    global _app_container

    container = AppContainer()
    container.config.from_pydantic(settings)
    _app_container = container
    return container


def get_container() -> AppContainer:
    """Get the initialized global container."""

    if _app_container is None:
        raise RuntimeError("Container has not been initialized yet")

    return _app_container


async def _sweep_forever(scheduler: RetrainingScheduler) -> None:
    interval = scheduler.interval.total_seconds()
    while True:
        await asyncio.sleep(interval)
        try:
            await scheduler.run_due()
        except DomainError as exc:
            logger.error(
                "container.sweep.failed", error=exc.message, details=exc.details
            )


@asynccontextmanager
async def app_lifespan(run_sweep: bool = True):
    """
    Centralized lifecycle management for external resources.

    Creates the MongoDB indexes on startup and closes the client on
    shutdown. With local dispatch the periodic retraining sweep runs as a
    task of this process; with Celery dispatch the workers run it.
    """
    container = get_container()
    uses_mongo = container.storage_backend() == EnumStorageBackend.MONGO.value
    mongo_database = container.mongo_database() if uses_mongo else None
    scheduler = container.retraining_scheduler()

    sweep: Optional[asyncio.Task] = None
    try:
        if mongo_database is not None:
            logger.info("container.mongo.ensure_connection")
            await mongo_database.create_indexes()

        if run_sweep and scheduler.dispatcher is None:
            sweep = asyncio.create_task(_sweep_forever(scheduler))

        logger.info(
            "container.resources.initialized",
            storage_backend=container.storage_backend(),
            scheduler=scheduler.describe(),
        )
        yield container

    finally:
        if sweep is not None:
            sweep.cancel()
            await asyncio.gather(sweep, return_exceptions=True)
        await scheduler.shutdown()

        if mongo_database is not None:
            logger.info("container.mongo.close")
            mongo_database.close()

        logger.info("container.resources.shutdown")
