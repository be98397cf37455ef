"""
Application Use Case - Serving Gateway

Resolves the model that serves an entity (the first active model along its
scope chain), persists every prediction and pairs it with the actual when
that already arrived, once per model and target. Serving from a cluster
model or from a stale model raises an alert so operators know the leaf is
under-served.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

import structlog

from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.application.use_cases.forecast_engine import ForecastEngine
from retail_forecast.domain.entities.drift import AlertEvent, DriftSignal
from retail_forecast.domain.entities.entity import Entity
from retail_forecast.domain.entities.errors import (
    AlertDeliveryError,
    NoActiveModelError,
)
from retail_forecast.domain.entities.model_artifact import ModelArtifact
from retail_forecast.domain.entities.prediction import ActualObservation, Prediction
from retail_forecast.domain.ports.alert_sink import IAlertSink
from retail_forecast.domain.repositories.feature_store import IFeatureStore
from retail_forecast.domain.repositories.model_registry import IModelRegistry
from retail_forecast.domain.repositories.prediction_repository import (
    IObservationRepository,
    IPredictionRepository,
)

logger = structlog.get_logger(__name__)


class ServingGateway:
    """Entry point for forecast requests."""

    def __init__(
        self,
        feature_store: IFeatureStore,
        registry: IModelRegistry,
        engine: ForecastEngine,
        prediction_repository: IPredictionRepository,
        observation_repository: IObservationRepository,
        drift_monitor: DriftMonitor,
        alert_sink: IAlertSink,
        max_model_age_seconds: float = 90 * 86400,
    ):
        self.feature_store = feature_store
        self.registry = registry
        self.engine = engine
        self.prediction_repository = prediction_repository
        self.observation_repository = observation_repository
        self.drift_monitor = drift_monitor
        self.alert_sink = alert_sink
        self.max_model_age_seconds = max_model_age_seconds

    async def resolve_model(self, entity_id: str) -> Tuple[Entity, ModelArtifact]:
        """
        Find the active model serving ``entity_id``.

        Raises:
            NotFoundError: If the entity is unknown
            NoActiveModelError: If no scope in the chain has an active model
        """
        entity = await self.feature_store.get_entity(entity_id)
        for scope in entity.scope_chain():
            artifact = await self.registry.find_active(scope)
            if artifact is not None:
                return entity, artifact
        raise NoActiveModelError(str(entity.scope))

    async def predict(
        self,
        entity_id: str,
        target_timestamp: datetime,
        coverage: Optional[float] = None,
    ) -> Prediction:
        """
        Forecast one target timestamp.

        Raises:
            NotFoundError: If the entity is unknown
            NoActiveModelError: If nothing can serve the entity
            MissingRegressorError: If a regressor is absent at the target
        """
        predictions = await self.predict_many(entity_id, [target_timestamp], coverage)
        return predictions[0]

    async def predict_many(
        self,
        entity_id: str,
        target_timestamps: Sequence[datetime],
        coverage: Optional[float] = None,
    ) -> List[Prediction]:
        """Forecast several target timestamps with the same resolved model."""
        entity, artifact = await self.resolve_model(entity_id)
        predictions = await self.engine.predict(
            artifact, entity_id, target_timestamps, coverage
        )
        await self._warn_if_degraded(entity, artifact)

        for prediction in predictions:
            observation = await self.observation_repository.get(
                entity_id, prediction.target_timestamp
            )
            # Re-serving a paired target adds no evidence about the model.
            fresh = observation is not None and not await self._served_before(
                prediction
            )
            await self.prediction_repository.save(prediction)
            if fresh:
                await self.drift_monitor.record(prediction, observation)

        logger.info(
            "serving.predicted",
            entity_id=entity_id,
            model_id=artifact.model_id,
            scope=str(artifact.entity_scope),
            targets=len(predictions),
        )
        return predictions

    async def pair_observation(
        self, observation: ActualObservation
    ) -> Optional[DriftSignal]:
        """Feed the newest prediction for the observation's target to drift."""
        predictions = await self.prediction_repository.find_for_target(
            observation.entity_id, observation.timestamp
        )
        if not predictions:
            return None
        return await self.drift_monitor.record(predictions[0], observation)

    async def _served_before(self, prediction: Prediction) -> bool:
        earlier = await self.prediction_repository.find_for_target(
            prediction.entity_id, prediction.target_timestamp
        )
        return any(p.model_id == prediction.model_id for p in earlier)

    async def _warn_if_degraded(self, entity: Entity, artifact: ModelArtifact) -> None:
        now = datetime.now(timezone.utc)
        age_seconds = artifact.age(now)
        reasons = []
        if artifact.entity_scope.is_cluster:
            reasons.append("cluster_fallback")
        if age_seconds > self.max_model_age_seconds:
            reasons.append("stale_model")

        for kind in reasons:
            logger.warning(
                f"serving.{kind}",
                entity_id=entity.entity_id,
                model_id=artifact.model_id,
                scope=str(artifact.entity_scope),
                age_seconds=age_seconds,
            )
            event = AlertEvent(
                entity_scope=str(entity.scope),
                status=kind,
                metric=None,
                timestamp=now,
                kind="serving",
                details={
                    "model_id": artifact.model_id,
                    "serving_scope": str(artifact.entity_scope),
                    "age_seconds": age_seconds,
                },
            )
            try:
                await self.alert_sink.emit(event)
            except AlertDeliveryError as exc:
                logger.error(
                    "serving.alert.undelivered",
                    entity_id=entity.entity_id,
                    error=exc.message,
                    details=exc.details,
                )
