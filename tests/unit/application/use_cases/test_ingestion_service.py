from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from retail_forecast.application.use_cases.ingestion import IngestionService
from retail_forecast.domain.entities.errors import TransientStorageError
from retail_forecast.domain.entities.feature import FeatureRecord, TimeRange
from retail_forecast.domain.entities.prediction import (
    ActualObservation,
    ConfidenceInterval,
    Prediction,
)
from retail_forecast.infrastructure.memory import InMemoryFeatureStore

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)
INGESTED = datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)


class FlakyFeatureStore(InMemoryFeatureStore):
    """Fails the first ``failures`` writes with a transient error."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def put(self, entity_id, timestamp, features, ingestion_time=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientStorageError("primary stepped down")
        return await super().put(entity_id, timestamp, features, ingestion_time)


def _record(value: float, ingestion_time: datetime = INGESTED) -> FeatureRecord:
    return FeatureRecord(
        entity_id="e1",
        timestamp=T0,
        features={"sales": value, "temperature": 25.0},
        ingestion_time=ingestion_time,
    )


def _service(stack, store) -> IngestionService:
    return IngestionService(
        store,
        stack.observations,
        stack.serving,
        max_retries=2,
        backoff_base_seconds=0.0,
        backoff_max_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_resent_feature_batch_is_idempotent(stack) -> None:
    assert await stack.ingestion.ingest_features([_record(10.0)]) == 1
    await stack.ingestion.ingest_features([_record(10.0)])

    assert stack.feature_store.record_count("e1") == 2
    rows = list(await stack.feature_store.get("e1", TimeRange(T0, T0 + timedelta(days=1))))
    assert rows[0].get("sales") == 10.0


@pytest.mark.asyncio
async def test_correction_with_later_ingestion_time_wins(stack) -> None:
    await stack.ingestion.ingest_features(
        [_record(10.0), _record(12.0, INGESTED + timedelta(hours=1))]
    )

    rows = list(
        await stack.feature_store.get("e1", TimeRange(T0, T0 + timedelta(days=1)), ["sales"])
    )

    assert rows[0].get("sales") == 12.0
    assert stack.feature_store.record_count("e1") == 4


@pytest.mark.asyncio
async def test_transient_failures_are_retried(stack) -> None:
    store = FlakyFeatureStore(failures=2)

    accepted = await _service(stack, store).ingest_features([_record(10.0)])

    assert accepted == 1
    assert store.calls == 3
    assert store.record_count("e1") == 2


@pytest.mark.asyncio
async def test_exhausted_retries_propagate(stack) -> None:
    store = FlakyFeatureStore(failures=3)

    with pytest.raises(TransientStorageError):
        await _service(stack, store).ingest_features([_record(10.0)])

    assert store.calls == 3


def test_backoff_grows_exponentially_and_is_capped(stack) -> None:
    service = IngestionService(
        stack.feature_store,
        stack.observations,
        stack.serving,
        backoff_base_seconds=0.1,
        backoff_max_seconds=0.5,
    )

    assert [service.backoff_delay(a) for a in range(4)] == pytest.approx(
        [0.1, 0.2, 0.4, 0.5]
    )


@pytest.mark.asyncio
async def test_resent_observation_is_not_counted_twice(stack) -> None:
    await stack.predictions.save(
        Prediction(
            model_id="m1",
            entity_scope="entity:e1",
            entity_id="e1",
            target_timestamp=T0,
            predicted_value=110.0,
            confidence_interval=ConfidenceInterval(lower=90.0, upper=130.0),
        )
    )
    observation = ActualObservation("e1", T0, 100.0)

    first = await stack.ingestion.ingest_observations([observation])
    second = await stack.ingestion.ingest_observations([observation])

    assert (first.stored, first.unchanged, first.paired) == (1, 0, 1)
    assert first.signals[0].value == pytest.approx(0.1)
    assert (second.stored, second.unchanged, second.paired) == (0, 1, 0)
    state = await stack.drift_states.get("entity:e1")
    assert state.size == 1


@pytest.mark.asyncio
async def test_observation_without_prediction_is_stored_unpaired(stack) -> None:
    result = await stack.ingestion.ingest_observations(
        [ActualObservation("e1", T0, 100.0), ActualObservation("e1", T0, 105.0)]
    )

    assert (result.stored, result.unchanged, result.paired) == (2, 0, 0)
    stored = await stack.observations.get("e1", T0)
    assert stored.observed_value == 105.0
