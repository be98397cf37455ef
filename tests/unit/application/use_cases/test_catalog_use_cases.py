from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from retail_forecast.application.dtos.entity_dto import (
    EntityCreateDTO,
    HierarchyUpdateDTO,
)
from retail_forecast.application.dtos.ingestion_dto import (
    FeatureBatchDTO,
    ObservationBatchDTO,
)
from retail_forecast.application.dtos.model_dto import PromoteRequestDTO
from retail_forecast.application.use_cases.catalog_use_cases import (
    AmendHierarchyUseCase,
    GetActiveModelUseCase,
    GetEntityUseCase,
    GetModelUseCase,
    ListScopeModelsUseCase,
    PromoteModelUseCase,
    RegisterEntityUseCase,
)
from retail_forecast.application.use_cases.pipeline_use_cases import (
    GetDriftSignalUseCase,
    IngestFeaturesUseCase,
    IngestObservationsUseCase,
)
from retail_forecast.domain.entities.drift import DriftStatus
from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import (
    ConcurrentPromotionConflict,
    NoActiveModelError,
    NotFoundError,
    ValidationError,
)
from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.model_artifact import ArtifactStatus

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
DAY = timedelta(days=1)


async def _register_candidate(stack, hyperparameters):
    artifact = await stack.engine.train(
        EntityScope.entity("north-a"), TimeRange(START, START + 60 * DAY), hyperparameters
    )
    return await stack.registry.register(artifact)


@pytest.mark.asyncio
async def test_register_and_amend_entity(stack) -> None:
    created = await RegisterEntityUseCase(stack.feature_store).execute(
        EntityCreateDTO(entity_id="north-a", hierarchy=["all", "north"])
    )
    assert created.hierarchy == ["all", "north"]

    amended = await AmendHierarchyUseCase(stack.feature_store).execute(
        "north-a", HierarchyUpdateDTO(hierarchy=["all", "north-west"])
    )

    assert amended.hierarchy == ["all", "north-west"]
    fetched = await GetEntityUseCase(stack.feature_store).execute("north-a")
    assert fetched.hierarchy == ["all", "north-west"]


@pytest.mark.asyncio
async def test_entity_cannot_be_its_own_cluster(stack) -> None:
    with pytest.raises(ValidationError):
        await RegisterEntityUseCase(stack.feature_store).execute(
            EntityCreateDTO(entity_id="north-a", hierarchy=["north-a"])
        )
    with pytest.raises(NotFoundError):
        await AmendHierarchyUseCase(stack.feature_store).execute(
            "ghost", HierarchyUpdateDTO(hierarchy=["north"])
        )


@pytest.mark.asyncio
async def test_manual_promotion_resets_drift_window(
    stack, seed_entity, hyperparameters
) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=60)
    candidate = await _register_candidate(stack, hyperparameters)
    assert await stack.drift_states.get("entity:north-a") is None

    promoted = await PromoteModelUseCase(stack.registry, stack.drift_monitor).execute(
        candidate.model_id, PromoteRequestDTO(expect_no_active=True)
    )

    assert promoted.status is ArtifactStatus.ACTIVE
    assert promoted.promoted_at is not None
    signal = await GetDriftSignalUseCase(stack.drift_monitor).execute("entity:north-a")
    assert signal.status is DriftStatus.OK
    assert signal.model_id == candidate.model_id
    active = await GetActiveModelUseCase(stack.registry).execute("north-a")
    assert active.model_id == candidate.model_id


@pytest.mark.asyncio
async def test_stale_expectation_loses_the_promotion(
    stack, seed_entity, hyperparameters
) -> None:
    await seed_entity(stack.feature_store, "north-a", ["north"], days=60)
    first = await _register_candidate(stack, hyperparameters)
    second = await _register_candidate(stack, hyperparameters)
    use_case = PromoteModelUseCase(stack.registry, stack.drift_monitor)
    await use_case.execute(first.model_id, PromoteRequestDTO())

    with pytest.raises(ConcurrentPromotionConflict):
        await use_case.execute(second.model_id, PromoteRequestDTO(expect_no_active=True))

    rollback = await use_case.execute(
        second.model_id, PromoteRequestDTO(expected_active_id=first.model_id)
    )
    assert rollback.version == 2
    models = await ListScopeModelsUseCase(stack.registry).execute("entity:north-a")
    assert [(m.version, m.status) for m in models] == [
        (2, ArtifactStatus.ACTIVE),
        (1, ArtifactStatus.RETIRED),
    ]


@pytest.mark.asyncio
async def test_model_lookups_raise_for_unknown_ids(stack) -> None:
    with pytest.raises(NotFoundError):
        await GetModelUseCase(stack.registry).execute("missing")
    with pytest.raises(NoActiveModelError):
        await GetActiveModelUseCase(stack.registry).execute("cluster:north")


@pytest.mark.asyncio
async def test_ingestion_use_cases_report_counts(stack) -> None:
    features = await IngestFeaturesUseCase(stack.ingestion).execute(
        FeatureBatchDTO(
            records=[
                {
                    "entity_id": "e1",
                    "timestamp": START,
                    "features": {"sales": 10.0, "temperature": 21.0},
                },
                {"entity_id": "e1", "timestamp": START + DAY, "features": {"sales": 12.0}},
            ]
        )
    )
    assert (features.accepted, features.values) == (2, 3)

    observations = await IngestObservationsUseCase(stack.ingestion).execute(
        ObservationBatchDTO(
            observations=[{"entity_id": "e1", "timestamp": START, "observed_value": 11.0}]
        )
    )
    assert (observations.stored, observations.paired) == (1, 0)
    assert observations.drift_signals == []
