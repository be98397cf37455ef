"""Model family lookup, deserialization and the loaded-model cache."""

import threading
from collections import OrderedDict
from typing import Optional, Type

from retail_forecast.application.forecasting.base import ForecastModel
from retail_forecast.application.forecasting.regression_model import (
    ClimateRegressionModel,
)
from retail_forecast.domain.entities.model_artifact import (
    ModelHyperparameters,
    ModelType,
)


def model_class(model_type: ModelType) -> Type[ForecastModel]:
    if model_type is ModelType.CLIMATE_REGRESSION:
        return ClimateRegressionModel
    # Recurrent families pull in tensorflow, so they are imported on demand.
    from retail_forecast.application.forecasting.recurrent_model import (
        GRUForecastModel,
        LSTMForecastModel,
    )

    if model_type is ModelType.LSTM:
        return LSTMForecastModel
    if model_type is ModelType.GRU:
        return GRUForecastModel
    raise ValueError(f"Unsupported model type: {model_type}")


def create_model(hyperparameters: ModelHyperparameters) -> ForecastModel:
    hyperparameters.validate()
    return model_class(hyperparameters.model_type)(hyperparameters)


def load_model(content: bytes) -> ForecastModel:
    bundle = ForecastModel.load_bundle(content)
    return model_class(ModelType(bundle["model_type"])).from_bundle(bundle)


class ModelCache:
    """Bounded LRU cache of deserialized models keyed by model_id.

    Artifacts are immutable, so entries never need invalidation.
    """

    def __init__(self, max_entries: int = 32):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ForecastModel]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, model_id: str) -> Optional[ForecastModel]:
        with self._lock:
            model = self._entries.get(model_id)
            if model is not None:
                self._entries.move_to_end(model_id)
            return model

    def put(self, model_id: str, model: ForecastModel) -> None:
        with self._lock:
            self._entries[model_id] = model
            self._entries.move_to_end(model_id)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
