from __future__ import annotations

import asyncio
import math
import threading
from datetime import datetime, timedelta, timezone

import pytest

from retail_forecast.application.forecasting.regression_model import (
    ClimateRegressionModel,
)
from retail_forecast.application.use_cases import forecast_engine
from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import (
    MissingRegressorError,
    ModelStateError,
    NotFoundError,
    TrainingFailure,
    ValidationError,
)
from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.model_artifact import ArtifactStatus

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
DAY = timedelta(days=1)


@pytest.mark.asyncio
async def test_train_entity_with_enough_history(stack, seed_entity, hyperparameters) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120)

    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 120 * DAY), hyperparameters
    )

    assert artifact.entity_scope == EntityScope.entity("north-a")
    assert artifact.status is ArtifactStatus.CANDIDATE
    assert artifact.fallback_from is None
    assert artifact.member_entities == ["north-a"]
    assert artifact.serialized_parameters
    assert artifact.metrics["samples"] == 120.0


@pytest.mark.asyncio
async def test_sparse_entity_falls_back_to_cluster(stack, seed_entity, hyperparameters) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120)
    await seed_entity(stack.feature_store, "north-new-sku", ["north"], days=3, seed=11)

    artifact = await stack.engine.train(
        EntityScope.entity("north-new-sku"),
        TimeRange(START, START + 120 * DAY),
        hyperparameters,
    )

    assert artifact.entity_scope == EntityScope.cluster("north")
    assert artifact.fallback_from == "entity:north-new-sku"
    assert sorted(artifact.member_entities) == ["north-a", "north-new-sku"]


@pytest.mark.asyncio
async def test_exhausted_hierarchy_raises_insufficient_samples(
    stack, seed_entity, hyperparameters
) -> None:
    await seed_entity(stack.feature_store, "lonely", ["island"], days=3)

    with pytest.raises(TrainingFailure) as exc_info:
        await stack.engine.train(
            EntityScope.entity("lonely"), TimeRange(START, START + 30 * DAY), hyperparameters
        )

    assert exc_info.value.reason == TrainingFailure.INSUFFICIENT_SAMPLES
    assert exc_info.value.details["sample_counts"] == {
        "entity:lonely": 3,
        "cluster:island": 3,
    }


@pytest.mark.asyncio
async def test_train_unknown_entity_is_not_found(stack, hyperparameters) -> None:
    with pytest.raises(NotFoundError):
        await stack.engine.train(
            EntityScope.entity("ghost"), TimeRange(START, START + DAY), hyperparameters
        )


@pytest.mark.asyncio
async def test_cluster_scope_walks_up_from_cluster(stack, seed_entity, hyperparameters) -> None:
    await seed_entity(stack.feature_store, "ne-1", ["all", "north-east"], days=10)
    await seed_entity(stack.feature_store, "s-1", ["all", "south"], days=60, seed=3)

    artifact = await stack.engine.train(
        EntityScope.cluster("north-east"),
        TimeRange(START, START + 60 * DAY),
        hyperparameters,
    )

    assert artifact.entity_scope == EntityScope.cluster("all")
    assert artifact.fallback_from == "cluster:north-east"


@pytest.mark.asyncio
async def test_predict_produces_intervals_on_the_grid(
    stack, seed_entity, hyperparameters
) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120, climate_days=130)
    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 120 * DAY), hyperparameters
    )

    targets = [START + (120 + k) * DAY for k in range(3)]
    predictions = await stack.engine.predict(artifact, "north-a", targets, coverage=0.9)

    assert [p.target_timestamp for p in predictions] == targets
    for prediction in predictions:
        interval = prediction.confidence_interval
        assert interval.lower < prediction.predicted_value < interval.upper
        assert interval.coverage == 0.9
        assert prediction.model_id == artifact.model_id
        assert prediction.entity_scope == "entity:north-a"


@pytest.mark.asyncio
async def test_predict_without_regressor_raises(stack, seed_entity, hyperparameters) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120)
    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 120 * DAY), hyperparameters
    )

    with pytest.raises(MissingRegressorError) as exc_info:
        await stack.engine.predict(artifact, "north-a", [START + 125 * DAY])

    assert exc_info.value.regressor == "temperature"
    assert exc_info.value.entity_id == "north-a"


@pytest.mark.asyncio
async def test_predict_validates_request(stack, seed_entity, hyperparameters) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120, climate_days=125)
    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 120 * DAY), hyperparameters
    )
    target = START + 121 * DAY

    with pytest.raises(ValidationError):
        await stack.engine.predict(artifact, "north-a", [target], coverage=1.5)
    with pytest.raises(ValidationError):
        await stack.engine.predict(
            artifact, "north-a", [target, target + timedelta(hours=6)]
        )
    with pytest.raises(ValidationError):
        await stack.engine.predict(artifact, "north-a", [target + timedelta(hours=6)])
    assert await stack.engine.predict(artifact, "north-a", []) == []

    artifact.mark_retired()
    with pytest.raises(ModelStateError):
        await stack.engine.predict(artifact, "north-a", [target])


@pytest.mark.asyncio
async def test_backtest_scores_holdout_and_nan_without_actuals(
    stack, seed_entity, hyperparameters
) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120)
    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 100 * DAY), hyperparameters
    )

    error = await stack.engine.backtest(
        artifact, ["north-a"], TimeRange(START + 100 * DAY, START + 120 * DAY)
    )
    assert 0.0 <= error < 0.15

    empty = await stack.engine.backtest(
        artifact, ["north-a"], TimeRange(START + 200 * DAY, START + 210 * DAY)
    )
    assert math.isnan(empty)


@pytest.mark.asyncio
async def test_loaded_models_are_cached(stack, seed_entity, hyperparameters) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=60)
    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 60 * DAY), hyperparameters
    )
    stack.engine.model_cache = type(stack.engine.model_cache)()

    first = await stack.engine.load(artifact)
    second = await stack.engine.load(artifact)

    assert first is second
    artifact.serialized_parameters = b""
    artifact.model_id = "unknown"
    with pytest.raises(ModelStateError):
        await stack.engine.load(artifact)


@pytest.mark.asyncio
async def test_entities_registered_on_first_write_have_no_hierarchy(stack) -> None:
    await stack.feature_store.put("auto", START, {"sales": 1.0})

    entity = await stack.feature_store.get_entity("auto")

    assert entity.hierarchy == []
    assert entity.scope_chain() == [EntityScope.entity("auto")]


class HeldRegressionModel(ClimateRegressionModel):
    """Fit that only returns once it is asked to stop."""

    def __init__(self, hyperparameters):
        super().__init__(hyperparameters)
        self.fitting = threading.Event()
        self.returned = threading.Event()

    def fit(self, frame):
        self.fitting.set()
        try:
            self._stop.wait(timeout=10)
            return super().fit(frame)
        finally:
            self.returned.set()


@pytest.mark.asyncio
async def test_cancelled_training_stops_and_waits_for_the_fit_thread(
    stack, seed_entity, hyperparameters, monkeypatch
) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120)
    models = []

    def held_model(hp):
        models.append(HeldRegressionModel(hp))
        return models[-1]

    monkeypatch.setattr(forecast_engine, "create_model", held_model)

    training = asyncio.create_task(
        stack.engine.train(
            EntityScope.entity("north-a"), TimeRange(START, START + 120 * DAY), hyperparameters
        )
    )
    while not models or not models[0].fitting.is_set():
        await asyncio.sleep(0.01)

    training.cancel()
    with pytest.raises(asyncio.CancelledError):
        await training

    assert models[0].stop_requested
    assert models[0].returned.is_set()
    assert not models[0].is_fitted
