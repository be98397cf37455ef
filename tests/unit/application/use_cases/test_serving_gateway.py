from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from retail_forecast.application.use_cases.serving import ServingGateway
from retail_forecast.domain.entities.entity import Entity, EntityScope
from retail_forecast.domain.entities.errors import NoActiveModelError, NotFoundError
from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.prediction import (
    ActualObservation,
    ConfidenceInterval,
    Prediction,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
DAY = timedelta(days=1)


async def _activate(stack, scope: EntityScope, hyperparameters, days: int = 120):
    artifact = await stack.engine.train(
        scope, TimeRange(START, START + days * DAY), hyperparameters
    )
    await stack.registry.register(artifact)
    return await stack.registry.promote(artifact.model_id)


@pytest_asyncio.fixture()
async def north(stack, seed_entity):
    await seed_entity(stack.feature_store, "north-a", ["north"], days=120, climate_days=130)
    await seed_entity(
        stack.feature_store, "north-new-sku", ["north"], days=3, climate_days=130, seed=5
    )
    return stack


@pytest.mark.asyncio
async def test_sparse_entity_is_served_by_cluster_model(north, hyperparameters) -> None:
    cluster_model = await _activate(
        north, EntityScope.entity("north-new-sku"), hyperparameters
    )
    assert cluster_model.entity_scope == EntityScope.cluster("north")

    prediction = await north.serving.predict("north-new-sku", START + 121 * DAY)

    assert prediction.model_id == cluster_model.model_id
    assert prediction.entity_scope == "cluster:north"
    assert prediction.entity_id == "north-new-sku"
    assert await north.predictions.find_for_target("north-new-sku", START + 121 * DAY)
    assert north.alerts.statuses("serving") == ["cluster_fallback"]
    assert north.alerts.events[-1].details["serving_scope"] == "cluster:north"


@pytest.mark.asyncio
async def test_leaf_model_wins_over_cluster_model(north, hyperparameters) -> None:
    await _activate(north, EntityScope.entity("north-new-sku"), hyperparameters)
    leaf = await _activate(north, EntityScope.entity("north-a"), hyperparameters)

    entity, artifact = await north.serving.resolve_model("north-a")

    assert entity.entity_id == "north-a"
    assert artifact.model_id == leaf.model_id
    prediction = await north.serving.predict("north-a", START + 121 * DAY)
    assert prediction.entity_scope == "entity:north-a"
    assert north.alerts.statuses("serving") == []


@pytest.mark.asyncio
async def test_untrained_scope_chain_raises_no_active_model(stack) -> None:
    await stack.feature_store.register_entity(Entity("fresh", hierarchy=["north"]))

    with pytest.raises(NoActiveModelError) as exc_info:
        await stack.serving.predict("fresh", START)

    assert exc_info.value.scope == "entity:fresh"
    with pytest.raises(NotFoundError):
        await stack.serving.predict("ghost", START)


@pytest.mark.asyncio
async def test_prediction_is_paired_with_an_existing_actual(north, hyperparameters) -> None:
    await _activate(north, EntityScope.entity("north-a"), hyperparameters)
    target = START + 121 * DAY
    await north.observations.upsert(ActualObservation("north-a", target, 210.0))

    await north.serving.predict("north-a", target)

    state = await north.drift_states.get("entity:north-a")
    assert state is not None
    assert state.size == 1


@pytest.mark.asyncio
async def test_reserving_a_paired_target_does_not_refill_the_window(
    north, hyperparameters
) -> None:
    await _activate(north, EntityScope.entity("north-a"), hyperparameters)
    target = START + 121 * DAY
    await north.observations.upsert(ActualObservation("north-a", target, 210.0))

    for _ in range(5):
        await north.serving.predict("north-a", target)

    state = await north.drift_states.get("entity:north-a")
    assert state.size == 1
    assert len(await north.predictions.find_for_target("north-a", target)) == 5
    assert north.alerts.statuses("drift") == []


@pytest.mark.asyncio
async def test_pair_observation_uses_newest_prediction(stack) -> None:

    target = START + 10 * DAY
    interval = ConfidenceInterval(lower=50.0, upper=150.0)
    for model_id, generated in (("old", START), ("new", START + DAY)):
        await stack.predictions.save(
            Prediction(
                model_id=model_id,
                entity_scope="entity:e1",
                entity_id="e1",
                target_timestamp=target,
                predicted_value=100.0,
                confidence_interval=interval,
                generated_at=generated,
            )
        )

    signal = await stack.serving.pair_observation(ActualObservation("e1", target, 100.0))

    assert signal is not None
    assert signal.model_id == "new"
    assert await stack.serving.pair_observation(
        ActualObservation("e1", target + DAY, 100.0)
    ) is None


@pytest.mark.asyncio
async def test_stale_model_raises_alert(north, hyperparameters) -> None:
    await _activate(north, EntityScope.entity("north-a"), hyperparameters)
    serving = ServingGateway(
        feature_store=north.feature_store,
        registry=north.registry,
        engine=north.engine,
        prediction_repository=north.predictions,
        observation_repository=north.observations,
        drift_monitor=north.drift_monitor,
        alert_sink=north.alerts,
        max_model_age_seconds=0.0,
    )

    predictions = await serving.predict_many(
        "north-a", [START + 121 * DAY, START + 122 * DAY]
    )

    assert len(predictions) == 2
    assert north.alerts.statuses("serving") == ["stale_model"]
