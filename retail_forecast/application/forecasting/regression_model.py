"""
Forecasting - Climate regression

Ridge regression on trend, weekday, yearly Fourier terms and exogenous
climate regressors. Targets are divided by each entity's mean level so
entities of different sizes can be pooled into one cluster model.
"""

from typing import Any, Dict, List, Optional

import numpy as np
import structlog
from sklearn.linear_model import Ridge
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import StandardScaler

from retail_forecast.application.forecasting.base import (
    ForecastModel,
    SeriesFrame,
    TrainingFrame,
)
from retail_forecast.application.forecasting.features import design_matrix
from retail_forecast.application.forecasting.metrics import regression_metrics
from retail_forecast.domain.entities.errors import TrainingFailure
from retail_forecast.domain.entities.model_artifact import ModelType

logger = structlog.get_logger(__name__)

MAX_RESIDUALS = 10000


class ClimateRegressionModel(ForecastModel):
    """Seasonal ridge regression with exogenous regressors."""

    model_type = ModelType.CLIMATE_REGRESSION

    def __init__(self, hyperparameters):
        super().__init__(hyperparameters)
        self.pipeline: Optional[Pipeline] = None

    def fit(self, frame: TrainingFrame) -> Dict[str, float]:
        origin = frame.origin
        if origin is None:
            raise TrainingFailure(
                "Training frame is empty", TrainingFailure.INSUFFICIENT_SAMPLES
            )

        levels: Dict[str, float] = {}
        blocks: List[np.ndarray] = []
        targets: List[np.ndarray] = []
        for series in frame.series:
            level = series.level()
            if level is None:
                continue
            levels[series.entity_id] = level
            mask = series.usable_mask
            if not mask.any():
                continue
            timestamps = [ts for ts, keep in zip(series.timestamps, mask) if keep]
            blocks.append(
                design_matrix(
                    timestamps,
                    series.regressors[mask],
                    origin,
                    self.hyperparameters.fourier_order,
                )
            )
            targets.append(series.target[mask] / level)

        if not blocks:
            raise TrainingFailure(
                "No usable samples in training frame",
                TrainingFailure.INSUFFICIENT_SAMPLES,
            )

        features = np.vstack(blocks)
        target = np.concatenate(targets)
        if self.stop_requested:
            raise TrainingFailure(
                "Training stopped on request", TrainingFailure.STOPPED
            )
        pipeline = make_pipeline(
            StandardScaler(), Ridge(alpha=self.hyperparameters.alpha)
        )
        try:
            pipeline.fit(features, target)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise TrainingFailure(
                f"Ridge fit failed: {exc}", TrainingFailure.NON_CONVERGENCE
            ) from exc

        ridge = pipeline[-1]
        if not (np.all(np.isfinite(ridge.coef_)) and np.isfinite(ridge.intercept_)):
            raise TrainingFailure(
                "Fitted coefficients are not finite",
                TrainingFailure.NON_CONVERGENCE,
            )

        fitted = pipeline.predict(features)
        self.pipeline = pipeline
        self.levels = levels
        self.residuals = (target - fitted)[-MAX_RESIDUALS:]
        self.origin = origin

        metrics = regression_metrics(target, fitted)
        metrics["samples"] = float(len(target))
        logger.debug(
            "forecast.climate_regression.fitted",
            samples=len(target),
            entities=len(levels),
            features=features.shape[1],
        )
        return metrics

    def predict(self, series: SeriesFrame, start: int) -> np.ndarray:
        self._require_fitted()
        if start >= len(series):
            return np.empty(0, dtype=float)
        features = design_matrix(
            series.timestamps[start:],
            series.regressors[start:],
            self.origin,
            self.hyperparameters.fourier_order,
        )
        # Rows with gaps stay NaN; callers only read rows they validated.
        predictions = np.full(len(features), np.nan, dtype=float)
        complete = np.isfinite(features).all(axis=1)
        if complete.any():
            predictions[complete] = self.pipeline.predict(features[complete])
        return predictions * self.level_for(series.entity_id)

    def _state(self) -> Dict[str, Any]:
        return {"pipeline": self.pipeline}

    def _restore(self, state: Dict[str, Any]) -> None:
        self.pipeline = state["pipeline"]
