from __future__ import annotations

from datetime import datetime, timezone
from typing import cast

import pytest
from fastapi import HTTPException

from retail_forecast.application.dtos.model_dto import PromoteRequestDTO
from retail_forecast.application.use_cases.catalog_use_cases import (
    GetModelUseCase,
    PromoteModelUseCase,
)
from retail_forecast.application.use_cases.pipeline_use_cases import ForecastUseCase
from retail_forecast.domain.entities.errors import (
    AlertDeliveryError,
    ConcurrentPromotionConflict,
    DomainError,
    MissingRegressorError,
    ModelStateError,
    NoActiveModelError,
    NotFoundError,
    TrainingFailure,
    TransientStorageError,
    ValidationError,
)
from retail_forecast.presentation.controllers import (
    forecasts_controller,
    models_controller,
)
from retail_forecast.presentation.controllers.errors import to_http_exception

TARGET = datetime(2024, 6, 14, tzinfo=timezone.utc)


class _Raising:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def execute(self, *args, **kwargs):
        raise self.error


@pytest.mark.parametrize(
    "error, expected",
    [
        (NotFoundError("Entity", "ghost"), 404),
        (NoActiveModelError("cluster:north"), 409),
        (ConcurrentPromotionConflict("cluster:north", "a", "b"), 409),
        (ModelStateError("retired models cannot serve"), 409),
        (MissingRegressorError("north-a", "temperature", TARGET), 422),
        (ValidationError("bad hierarchy"), 422),
        (TrainingFailure("too few rows", TrainingFailure.INSUFFICIENT_SAMPLES), 422),
        (TransientStorageError("primary stepped down"), 503),
        (AlertDeliveryError("receiver down"), 502),
        (DomainError("unclassified"), 400),
    ],
)
def test_domain_errors_map_to_status(error, expected) -> None:
    exc = to_http_exception(error)

    assert exc.status_code == expected
    assert exc.detail["error"] == type(error).__name__
    assert exc.detail["message"] == error.message


def test_missing_regressor_details_name_the_regressor() -> None:
    exc = to_http_exception(MissingRegressorError("north-a", "temperature", TARGET))

    assert exc.detail["details"]["regressor"] == "temperature"
    assert exc.detail["details"]["timestamp"] == TARGET.isoformat()


@pytest.mark.asyncio
async def test_forecast_without_active_model_is_409() -> None:
    with pytest.raises(HTTPException) as exc:
        await forecasts_controller.get_forecast(
            entity_id="north-a",
            target_timestamp=TARGET,
            coverage=None,
            forecast_use_case=cast(
                ForecastUseCase, _Raising(NoActiveModelError("entity:north-a"))
            ),
        )

    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_forecast_missing_regressor_is_422() -> None:
    error = MissingRegressorError("north-a", "precipitation", TARGET)

    with pytest.raises(HTTPException) as exc:
        await forecasts_controller.get_forecast(
            entity_id="north-a",
            target_timestamp=TARGET,
            coverage=0.9,
            forecast_use_case=cast(ForecastUseCase, _Raising(error)),
        )

    assert exc.value.status_code == 422
    assert exc.value.detail["error"] == "MissingRegressorError"


@pytest.mark.asyncio
async def test_forecast_unexpected_error_is_500() -> None:
    with pytest.raises(HTTPException) as exc:
        await forecasts_controller.get_forecast(
            entity_id="north-a",
            target_timestamp=TARGET,
            coverage=None,
            forecast_use_case=cast(ForecastUseCase, _Raising(KeyError("x"))),
        )

    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_get_unknown_model_is_404() -> None:
    with pytest.raises(HTTPException) as exc:
        await models_controller.get_model(
            model_id="missing",
            get_model_use_case=cast(
                GetModelUseCase, _Raising(NotFoundError("Model", "missing"))
            ),
        )

    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_promote_passes_default_request() -> None:
    received = []

    class _Promoter:
        async def execute(self, model_id, request):
            received.append((model_id, request))
            raise ConcurrentPromotionConflict("cluster:north", None, "model-2")

    with pytest.raises(HTTPException) as exc:
        await models_controller.promote_model(
            model_id="model-3",
            request=None,
            promote_model_use_case=cast(PromoteModelUseCase, _Promoter()),
        )

    assert exc.value.status_code == 409
    assert exc.value.detail["details"]["actual_model_id"] == "model-2"
    assert received == [("model-3", PromoteRequestDTO())]
