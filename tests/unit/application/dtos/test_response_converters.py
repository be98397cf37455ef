from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from retail_forecast.application.dtos.converters import (
    finite_or_none,
    to_artifact_dto,
    to_drift_signal_dto,
    to_training_job_dto,
)
from retail_forecast.application.dtos.ingestion_dto import FeatureBatchDTO
from retail_forecast.application.dtos.model_dto import HyperparametersDTO
from retail_forecast.domain.entities.drift import DriftSignal, DriftStatus
from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.model_artifact import (
    ArtifactStatus,
    ModelArtifact,
    ModelHyperparameters,
    ModelType,
)
from retail_forecast.domain.entities.training_job import TrainingJob, TrainingReason

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value,expected",
    [(None, None), (float("nan"), None), (float("inf"), None), (0.125, 0.125)],
)
def test_finite_or_none(value, expected) -> None:
    assert finite_or_none(value) == expected


def test_artifact_dto_hides_parameters_and_nan_metrics() -> None:
    artifact = ModelArtifact(
        entity_scope=EntityScope.cluster("north"),
        model_type=ModelType.CLIMATE_REGRESSION,
        training_window=TimeRange(START, START + timedelta(days=30)),
        hyperparameters=ModelHyperparameters(regressors=["temperature"]),
        serialized_parameters=b"weights",
        status=ArtifactStatus.CANDIDATE,
        metrics={"mape": float("nan"), "samples": 30.0},
        member_entities=["north-a"],
    )

    dto = to_artifact_dto(artifact)

    assert dto.entity_scope == "cluster:north"
    assert dto.metrics == {"mape": None, "samples": 30.0}
    assert dto.hyperparameters.regressors == ["temperature"]
    assert "serialized_parameters" not in dto.model_dump()


def test_training_job_dto_reports_nan_errors_as_null() -> None:
    job = TrainingJob(entity_scope="entity:north-a", reason=TrainingReason.DRIFT_BREACH)
    job.mark_training()
    job.mark_completed(promoted=True, candidate_error=float("nan"), incumbent_error=None)

    dto = to_training_job_dto(job)

    assert dto.candidate_error is None
    assert dto.promoted is True
    assert dto.model_dump(mode="json")["reason"] == "drift_breach"


def test_drift_signal_dto_keeps_empty_window_value_null() -> None:
    dto = to_drift_signal_dto(
        DriftSignal("entity:north-a", DriftStatus.BREACH, "mape", None, 0.2)
    )

    assert dto.value is None
    assert dto.status is DriftStatus.BREACH


def test_request_dtos_validate_input() -> None:
    with pytest.raises(PydanticValidationError):
        FeatureBatchDTO(records=[])
    with pytest.raises(PydanticValidationError):
        HyperparametersDTO(learning_rate=0.0)
    assert HyperparametersDTO().model_type is ModelType.CLIMATE_REGRESSION
