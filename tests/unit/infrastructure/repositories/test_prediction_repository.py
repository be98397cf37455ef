from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from retail_forecast.domain.entities.drift import DriftState, DriftStatus
from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.prediction import (
    ActualObservation,
    ConfidenceInterval,
    Prediction,
)
from retail_forecast.infrastructure.repositories.drift_state_repository import (
    MongoDriftStateRepository,
)
from retail_forecast.infrastructure.repositories.prediction_repository import (
    MongoObservationRepository,
    MongoPredictionRepository,
)

T0 = datetime(2024, 7, 1, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def _prediction(target: datetime, model_id: str, generated: datetime) -> Prediction:
    return Prediction(
        model_id=model_id,
        entity_scope="cluster:north",
        entity_id="north-new-sku",
        target_timestamp=target,
        predicted_value=42.0,
        confidence_interval=ConfidenceInterval(lower=30.0, upper=55.0, coverage=0.8),
        generated_at=generated,
    )


@pytest.mark.asyncio
async def test_predictions_for_target_newest_first(mongo_database) -> None:
    repository = MongoPredictionRepository(mongo_database)
    await repository.save(_prediction(T0, "old", T0 - 2 * DAY))
    await repository.save(_prediction(T0, "new", T0 - DAY))
    await repository.save(_prediction(T0 + DAY, "new", T0 - DAY))

    found = await repository.find_for_target("north-new-sku", T0)

    assert [p.model_id for p in found] == ["new", "old"]
    assert found[0].confidence_interval.coverage == 0.8
    assert found[0].entity_scope == "cluster:north"


@pytest.mark.asyncio
async def test_predictions_listed_by_target_range(mongo_database) -> None:
    repository = MongoPredictionRepository(mongo_database)
    for offset in range(4):
        await repository.save(_prediction(T0 + offset * DAY, "m1", T0 - DAY))

    listed = await repository.list_by_entity(
        "north-new-sku", TimeRange(T0 + DAY, T0 + 3 * DAY)
    )

    assert [p.target_timestamp for p in listed] == [T0 + DAY, T0 + 2 * DAY]


@pytest.mark.asyncio
async def test_observation_upsert_reports_changes(mongo_database) -> None:
    repository = MongoObservationRepository(mongo_database)
    observation = ActualObservation("north-a", T0, 120.0)

    assert await repository.upsert(observation) is True
    assert await repository.upsert(observation) is False
    assert await repository.upsert(ActualObservation("north-a", T0, 125.0)) is True

    stored = await repository.get("north-a", T0)
    assert stored.observed_value == 125.0
    assert await repository.get("north-a", T0 + DAY) is None
    assert len(await repository.list_by_entity("north-a")) == 1


@pytest.mark.asyncio
async def test_drift_state_save_and_reload(mongo_database) -> None:
    repository = MongoDriftStateRepository(mongo_database)
    state = DriftState(entity_scope="entity:north-a", model_id="m1")
    state.push(0.1, T0, window_size=3)
    state.push(0.3, T0 + DAY, window_size=3)
    state.status = DriftStatus.WARNING

    await repository.save(state)
    await repository.save(state)

    reloaded = await repository.get("entity:north-a")
    assert reloaded.status is DriftStatus.WARNING
    assert reloaded.errors == [0.1, 0.3]
    assert reloaded.timestamps == [T0, T0 + DAY]
    assert reloaded.metric == pytest.approx(0.2)
    assert [s.entity_scope for s in await repository.list_all()] == ["entity:north-a"]
    assert await repository.get("entity:missing") is None
