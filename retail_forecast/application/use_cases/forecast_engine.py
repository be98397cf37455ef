"""
Application Use Case - Forecast Engine

Trains models with hierarchical fallback, produces point forecasts with
confidence intervals and back-tests artifacts on a holdout window. Fitting
and inference run in worker threads so the event loop stays responsive.
"""

import asyncio
import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import structlog

from retail_forecast.application.forecasting.base import (
    ForecastModel,
    SeriesFrame,
    TrainingFrame,
)
from retail_forecast.application.forecasting.factory import (
    ModelCache,
    create_model,
    load_model,
)
from retail_forecast.application.forecasting.metrics import mape
from retail_forecast.domain.entities.entity import Entity, EntityScope
from retail_forecast.domain.entities.errors import (
    MissingRegressorError,
    ModelStateError,
    TrainingFailure,
    ValidationError,
)
from retail_forecast.domain.entities.feature import (
    MISSING,
    FeatureRow,
    TimeRange,
    ensure_utc,
)
from retail_forecast.domain.entities.model_artifact import (
    ArtifactStatus,
    ModelArtifact,
    ModelHyperparameters,
)
from retail_forecast.domain.entities.prediction import (
    DEFAULT_COVERAGE,
    ConfidenceInterval,
    Prediction,
)
from retail_forecast.domain.repositories.feature_store import IFeatureStore

logger = structlog.get_logger(__name__)


class ForecastEngine:
    """Train, predict and back-test forecasting models."""

    def __init__(
        self,
        feature_store: IFeatureStore,
        min_samples: int = 30,
        default_coverage: float = DEFAULT_COVERAGE,
        model_cache: Optional[ModelCache] = None,
    ):
        """
        Initialize the forecast engine.

        Args:
            feature_store: Source of training and inference features
            min_samples: Pooled usable rows required before fitting a scope
            default_coverage: Interval coverage when callers pass none
            model_cache: Cache of deserialized models
        """
        self.feature_store = feature_store
        self.min_samples = min_samples
        self.default_coverage = default_coverage
        self.model_cache = model_cache or ModelCache()

    async def train(
        self,
        scope: EntityScope,
        window: TimeRange,
        hyperparameters: ModelHyperparameters,
    ) -> ModelArtifact:
        """
        Train a candidate for ``scope`` on ``window``.

        The leaf scope is tried first; while the pooled sample count stays
        below ``min_samples`` the next cluster up the hierarchy is tried.

        Returns:
            Unregistered artifact in status candidate

        Raises:
            NotFoundError: If an entity scope names an unknown entity
            TrainingFailure: If the hierarchy is exhausted or the fit diverges
        """
        hyperparameters.validate()
        candidates = await self._scope_candidates(scope)

        frame: Optional[TrainingFrame] = None
        trained_scope: Optional[EntityScope] = None
        sample_counts: Dict[str, int] = {}
        for candidate in candidates:
            candidate_frame = await self._training_frame(
                candidate, window, hyperparameters
            )
            sample_counts[str(candidate)] = candidate_frame.sample_count
            if candidate_frame.sample_count >= self.min_samples:
                frame, trained_scope = candidate_frame, candidate
                break
            logger.info(
                "forecast_engine.train.fallback",
                scope=str(candidate),
                samples=candidate_frame.sample_count,
                min_samples=self.min_samples,
            )

        if frame is None or trained_scope is None:
            raise TrainingFailure(
                f"Not enough samples to train scope '{scope}'",
                TrainingFailure.INSUFFICIENT_SAMPLES,
                {"min_samples": self.min_samples, "sample_counts": sample_counts},
            )

        model = create_model(hyperparameters)
        metrics = await self._fit(model, frame)
        parameters = await asyncio.to_thread(model.to_bytes)

        artifact = ModelArtifact(
            entity_scope=trained_scope,
            model_type=hyperparameters.model_type,
            training_window=window,
            hyperparameters=hyperparameters,
            serialized_parameters=parameters,
            status=ArtifactStatus.CANDIDATE,
            metrics=metrics,
            member_entities=frame.entity_ids,
            fallback_from=str(scope) if trained_scope != scope else None,
        )
        self.model_cache.put(artifact.model_id, model)

        logger.info(
            "forecast_engine.train.completed",
            model_id=artifact.model_id,
            scope=str(trained_scope),
            requested_scope=str(scope),
            model_type=hyperparameters.model_type.value,
            samples=frame.sample_count,
            entities=len(frame.series),
        )
        return artifact

    async def _fit(self, model: ForecastModel, frame: TrainingFrame) -> Dict[str, float]:
        """
        Fit ``model`` in a worker thread.

        A thread cannot be cancelled. When the caller is cancelled the model
        is asked to stop and the thread is awaited, so nothing keeps
        training once the caller has released its scope.
        """
        fit = asyncio.ensure_future(asyncio.to_thread(model.fit, frame))
        try:
            return await asyncio.shield(fit)
        except asyncio.CancelledError:
            model.request_stop()
            await asyncio.wait({fit})
            if not fit.cancelled() and fit.exception() is not None:
                logger.info(
                    "forecast_engine.train.stopped",
                    model_type=model.model_type.value,
                    error=str(fit.exception()),
                )
            raise

    async def predict(

        self,
        artifact: ModelArtifact,
        entity_id: str,
        target_timestamps: Sequence[datetime],
        coverage: Optional[float] = None,
    ) -> List[Prediction]:
        """
        Forecast ``entity_id`` at every target timestamp.

        Raises:
            NotFoundError: If the entity is unknown
            MissingRegressorError: If a regressor is absent at a target
            ModelStateError: If the artifact is not servable
            ValidationError: If coverage or timestamps are invalid
        """
        coverage = self.default_coverage if coverage is None else coverage
        if not 0.0 < coverage < 1.0:
            raise ValidationError("coverage must be in (0, 1)", {"coverage": coverage})
        if not artifact.is_servable:
            raise ModelStateError(
                f"Model '{artifact.model_id}' is {artifact.status.value}",
                {"model_id": artifact.model_id, "status": artifact.status.value},
            )

        targets = sorted({ensure_utc(ts) for ts in target_timestamps})
        if not targets:
            return []

        entity = await self.feature_store.get_entity(entity_id)
        model = await self.load(artifact)
        step = entity.frequency
        for ts in targets:
            if (ts - targets[0]) % step:
                raise ValidationError(
                    "Target timestamps must lie on the entity's sampling grid",
                    {"entity_id": entity_id, "timestamp": ts.isoformat()},
                )

        window = TimeRange(targets[0] - step * model.context_length, targets[-1] + step)
        series = await self._series(entity, window, artifact.hyperparameters)
        index = {ts: i for i, ts in enumerate(series.timestamps)}
        for ts in targets:
            if ts not in index:
                raise ValidationError(
                    "Target timestamps must lie on the entity's sampling grid",
                    {"entity_id": entity_id, "timestamp": ts.isoformat()},
                )
            self._require_regressors(series, index[ts], artifact, entity_id, ts)

        start = index[targets[0]]
        point = await asyncio.to_thread(model.predict, series, start)
        lower, upper = model.quantify_uncertainty(point, entity_id, coverage)

        predictions = []
        for ts in targets:
            k = index[ts] - start
            predictions.append(
                Prediction(
                    model_id=artifact.model_id,
                    entity_scope=str(artifact.entity_scope),
                    entity_id=entity_id,
                    target_timestamp=ts,
                    predicted_value=float(point[k]),
                    confidence_interval=ConfidenceInterval(
                        lower=float(lower[k]), upper=float(upper[k]), coverage=coverage
                    ),
                )
            )
        return predictions

    async def backtest(
        self,
        artifact: ModelArtifact,
        entity_ids: Iterable[str],
        window: TimeRange,
    ) -> float:
        """
        MAPE of ``artifact`` over the observed values inside ``window``.

        Rows without an observed target or with missing regressors are left
        out. Returns NaN when nothing could be paired.
        """
        model = await self.load(artifact)
        actual: List[np.ndarray] = []
        predicted: List[np.ndarray] = []
        for entity_id in entity_ids:
            entity = await self.feature_store.get_entity(entity_id)
            step = entity.frequency
            context = TimeRange(window.start - step * model.context_length, window.end)
            series = await self._series(entity, context, artifact.hyperparameters)
            start = next(
                (i for i, ts in enumerate(series.timestamps) if ts >= window.start),
                len(series),
            )
            if start >= len(series):
                continue
            point = await asyncio.to_thread(model.predict, series, start)
            mask = series.usable_mask[start:]
            actual.append(series.target[start:][mask])
            predicted.append(point[mask])

        if not actual:
            return math.nan
        error = mape(np.concatenate(actual), np.concatenate(predicted))
        logger.debug(
            "forecast_engine.backtest",
            model_id=artifact.model_id,
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
            mape=error,
        )
        return error

    async def load(self, artifact: ModelArtifact) -> ForecastModel:
        """Deserialize an artifact, reusing the cached instance if present."""
        model = self.model_cache.get(artifact.model_id)
        if model is None:
            if not artifact.serialized_parameters:
                raise ModelStateError(
                    f"Model '{artifact.model_id}' has no parameters",
                    {"model_id": artifact.model_id},
                )
            model = await asyncio.to_thread(load_model, artifact.serialized_parameters)
            self.model_cache.put(artifact.model_id, model)
        return model

    async def _scope_candidates(self, scope: EntityScope) -> List[EntityScope]:
        if not scope.is_cluster:
            entity = await self.feature_store.get_entity(scope.key)
            return entity.scope_chain()
        members = await self.feature_store.list_entities(scope.key)
        for member in members:
            ancestors = member.ancestors_of(scope.key)
            if ancestors:
                return [scope] + ancestors
        return [scope]

    async def _members(self, scope: EntityScope) -> List[Entity]:
        if scope.is_cluster:
            return await self.feature_store.list_entities(scope.key)
        return [await self.feature_store.get_entity(scope.key)]

    async def _training_frame(
        self,
        scope: EntityScope,
        window: TimeRange,
        hyperparameters: ModelHyperparameters,
    ) -> TrainingFrame:
        series = []
        for member in await self._members(scope):
            frame = await self._series(member, window, hyperparameters, pad=False)
            if len(frame):
                series.append(frame)
        return TrainingFrame(
            series=series,
            target_feature=hyperparameters.target_feature,
            regressors=list(hyperparameters.regressors),
        )

    async def _series(
        self,
        entity: Entity,
        window: TimeRange,
        hyperparameters: ModelHyperparameters,
        pad: bool = True,
    ) -> SeriesFrame:
        names = [hyperparameters.target_feature, *hyperparameters.regressors]
        rows = list(await self.feature_store.get(entity.entity_id, window, names))
        if not rows and pad:
            rows = [
                FeatureRow(timestamp=ts, values={name: MISSING for name in names})
                for ts in window.grid(entity.frequency)
            ]
        return SeriesFrame.from_rows(
            entity.entity_id,
            rows,
            hyperparameters.target_feature,
            hyperparameters.regressors,
        )

    @staticmethod
    def _require_regressors(
        series: SeriesFrame,
        row: int,
        artifact: ModelArtifact,
        entity_id: str,
        timestamp: datetime,
    ) -> None:
        for column, name in enumerate(artifact.hyperparameters.regressors):
            if not np.isfinite(series.regressors[row, column]):
                raise MissingRegressorError(entity_id, name, timestamp)
