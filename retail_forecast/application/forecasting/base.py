"""
Forecasting - Model capability and training data structures

Every model family implements ForecastModel: fit on a pooled TrainingFrame,
predict point values for a SeriesFrame, quantify uncertainty from stored
residuals and serialize itself to bytes.
"""

from __future__ import annotations

import io
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import joblib
import numpy as np

from retail_forecast.domain.entities.errors import ModelStateError
from retail_forecast.domain.entities.feature import MISSING, FeatureRow
from retail_forecast.domain.entities.model_artifact import (
    ModelHyperparameters,
    ModelType,
)

FORMAT_VERSION = 1

# Smallest interval half-width, relative to the entity level.
MIN_RELATIVE_HALF_WIDTH = 1e-3

# Levels closer to zero than this are treated as 1.0 to keep
# normalisation finite.
LEVEL_EPSILON = 1e-6


@dataclass
class SeriesFrame:
    """Grid-aligned series of one entity as numpy arrays.

    ``target`` and ``regressors`` hold NaN where the store reported MISSING.
    """

    entity_id: str
    timestamps: List[datetime]
    target: np.ndarray
    regressors: np.ndarray

    @classmethod
    def from_rows(
        cls,
        entity_id: str,
        rows: Sequence[FeatureRow],
        target_feature: str,
        regressors: Sequence[str],
    ) -> "SeriesFrame":
        target = np.full(len(rows), np.nan, dtype=float)
        matrix = np.full((len(rows), len(regressors)), np.nan, dtype=float)
        for i, row in enumerate(rows):
            value = row.get(target_feature)
            if value is not MISSING:
                target[i] = float(value)
            for j, name in enumerate(regressors):
                value = row.get(name)
                if value is not MISSING:
                    matrix[i, j] = float(value)
        return cls(
            entity_id=entity_id,
            timestamps=[row.timestamp for row in rows],
            target=target,
            regressors=matrix,
        )

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def usable_mask(self) -> np.ndarray:
        """Rows with a finite target and every regressor present."""
        mask = np.isfinite(self.target)
        if self.regressors.size:
            mask &= np.isfinite(self.regressors).all(axis=1)
        return mask

    @property
    def sample_count(self) -> int:
        return int(self.usable_mask.sum())

    def level(self) -> Optional[float]:
        finite = self.target[np.isfinite(self.target)]
        if finite.size == 0:
            return None
        level = float(np.mean(finite))
        if abs(level) < LEVEL_EPSILON:
            return 1.0
        return level


@dataclass
class TrainingFrame:
    """Series of every entity pooled into one training run."""

    series: List[SeriesFrame]
    target_feature: str
    regressors: List[str] = field(default_factory=list)

    @property
    def sample_count(self) -> int:
        return sum(frame.sample_count for frame in self.series)

    @property
    def entity_ids(self) -> List[str]:
        return [frame.entity_id for frame in self.series]

    @property
    def origin(self) -> Optional[datetime]:
        starts = [frame.timestamps[0] for frame in self.series if len(frame)]
        return min(starts) if starts else None


class ForecastModel(ABC):
    """Capability shared by every forecasting model family."""

    model_type: ModelType

    def __init__(self, hyperparameters: ModelHyperparameters):
        self.hyperparameters = hyperparameters
        self.levels: Dict[str, float] = {}
        self.residuals: np.ndarray = np.empty(0, dtype=float)
        self.origin: Optional[datetime] = None
        self._stop = threading.Event()

    @property
    def is_fitted(self) -> bool:
        return self.origin is not None

    def request_stop(self) -> None:
        """Ask a fit running in a worker thread to return as soon as it can."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def context_length(self) -> int:
        """Grid rows needed before the first target row."""
        return 0

    @abstractmethod
    def fit(self, frame: TrainingFrame) -> Dict[str, float]:
        """
        Fit the model on a pooled frame.

        Returns:
            In-sample metrics

        Raises:
            TrainingFailure: If the fitted parameters are not finite
        """

    @abstractmethod
    def predict(self, series: SeriesFrame, start: int) -> np.ndarray:
        """
        Point forecasts for rows ``start`` to the end of ``series``.

        Rows before ``start`` provide context only. Callers guarantee the
        regressors of the predicted rows are present.
        """

    @abstractmethod
    def _state(self) -> Dict[str, Any]:
        """Family specific serializable state."""

    @abstractmethod
    def _restore(self, state: Dict[str, Any]) -> None:
        pass

    def level_for(self, entity_id: str) -> float:
        """Training level of an entity; members unseen in training get the median."""
        if entity_id in self.levels:
            return self.levels[entity_id]
        if self.levels:
            return float(np.median(list(self.levels.values())))
        return 1.0

    def quantify_uncertainty(
        self, point: np.ndarray, entity_id: str, coverage: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Residual-quantile interval around ``point`` at ``coverage``.

        Residuals are stored on the normalised scale, so the interval is
        rescaled by the entity level. Intervals can be asymmetric but never
        collapse to zero width.
        """
        self._require_fitted()
        level = abs(self.level_for(entity_id))
        if self.residuals.size:
            alpha = (1.0 - coverage) / 2.0
            low_q, high_q = np.quantile(self.residuals, [alpha, 1.0 - alpha])
        else:
            low_q, high_q = 0.0, 0.0
        min_half_width = MIN_RELATIVE_HALF_WIDTH * max(level, 1.0)
        lower = point + min(float(low_q) * level, -min_half_width)
        upper = point + max(float(high_q) * level, min_half_width)
        return lower, upper

    def to_bytes(self) -> bytes:
        self._require_fitted()
        bundle = {
            "format_version": FORMAT_VERSION,
            "model_type": self.model_type.value,
            "hyperparameters": self.hyperparameters.to_dict(),
            "levels": dict(self.levels),
            "residuals": self.residuals,
            "origin": self.origin,
            "state": self._state(),
        }
        buffer = io.BytesIO()
        try:
            joblib.dump(bundle, buffer)
            return buffer.getvalue()
        finally:
            buffer.close()

    @classmethod
    def load_bundle(cls, content: bytes) -> Dict[str, Any]:
        buffer = io.BytesIO(content)
        try:
            bundle = joblib.load(buffer)
        finally:
            buffer.close()
        version = bundle.get("format_version")
        if version != FORMAT_VERSION:
            raise ModelStateError(
                "Unsupported artifact format",
                {"format_version": version, "supported": FORMAT_VERSION},
            )
        return bundle

    @classmethod
    def from_bundle(cls, bundle: Dict[str, Any]) -> "ForecastModel":
        model = cls(ModelHyperparameters.from_dict(bundle["hyperparameters"]))
        model.levels = dict(bundle["levels"])
        model.residuals = np.asarray(bundle["residuals"], dtype=float)
        model.origin = bundle["origin"]
        model._restore(bundle["state"])
        return model

    def _require_fitted(self) -> None:
        if not self.is_fitted:
            raise ModelStateError(f"{self.model_type.value} model is not fitted")

    def _normalised_target(self, series: SeriesFrame) -> np.ndarray:
        return series.target / self.level_for(series.entity_id)
