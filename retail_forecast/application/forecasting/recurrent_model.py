"""
Forecasting - Recurrent networks (LSTM / GRU)

Each time step of the input sequence carries the standardised design row of
that step plus the normalised target of the step before it. Forecasts beyond
the last observed value are rolled out one step at a time, feeding each
prediction back as the next lag.
"""

import io
import os
import tempfile
from typing import Any, Dict, List, Optional

import joblib
import numpy as np
import structlog
from sklearn.preprocessing import StandardScaler
from tensorflow import keras  # type: ignore
from tensorflow.keras.callbacks import Callback, EarlyStopping  # type: ignore
from tensorflow.keras.layers import GRU, LSTM, Dense, Input  # type: ignore
from tensorflow.keras.models import Sequential, load_model  # type: ignore
from tensorflow.keras.optimizers import Adam  # type: ignore

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

VALIDATION_FRACTION = 0.1
MIN_VALIDATION_SAMPLES = 20


class _StopWhenRequested(Callback):
    """Ends training after the current batch once the owner asks to stop."""

    def __init__(self, owner: "RecurrentForecastModel"):
        super().__init__()
        self.owner = owner

    def on_train_batch_end(self, batch, logs=None):
        if self.owner.stop_requested:
            self.model.stop_training = True


class RecurrentForecastModel(ForecastModel):
    """Single recurrent layer followed by a linear output."""

    model_type = ModelType.LSTM

    def __init__(self, hyperparameters):
        super().__init__(hyperparameters)
        self.network: Optional[Sequential] = None
        self.scaler: Optional[StandardScaler] = None

    @property
    def context_length(self) -> int:
        return self.hyperparameters.lookback_window

    def fit(self, frame: TrainingFrame) -> Dict[str, float]:
        origin = frame.origin
        if origin is None:
            raise TrainingFailure(
                "Training frame is empty", TrainingFailure.INSUFFICIENT_SAMPLES
            )
        self.origin = origin
        try:
            return self._fit(frame)
        except Exception:
            self.origin = None
            raise

    def _fit(self, frame: TrainingFrame) -> Dict[str, float]:
        hp = self.hyperparameters
        self.levels = {
            series.entity_id: series.level()
            for series in frame.series
            if series.level() is not None
        }

        designs = [self._design(series) for series in frame.series]
        usable = [d[np.isfinite(d).all(axis=1)] for d in designs if len(d)]
        usable = [block for block in usable if len(block)]
        if not usable:
            raise TrainingFailure(
                "No usable samples in training frame",
                TrainingFailure.INSUFFICIENT_SAMPLES,
            )
        self.scaler = StandardScaler().fit(np.vstack(usable))

        windows: List[np.ndarray] = []
        targets: List[float] = []
        for series, design in zip(frame.series, designs):
            if series.entity_id not in self.levels:
                continue
            steps = self._steps(design, self._normalised_target(series))
            y = self._normalised_target(series)
            for t in range(len(series)):
                if not np.isfinite(y[t]):
                    continue
                window = self._window(steps, t)
                if window is None:
                    continue
                windows.append(window)
                targets.append(float(y[t]))

        if not windows:
            raise TrainingFailure(
                "Not enough contiguous history for the lookback window",
                TrainingFailure.INSUFFICIENT_SAMPLES,
                {"lookback_window": hp.lookback_window},
            )

        x = np.stack(windows)
        y = np.asarray(targets, dtype=float)

        keras.utils.set_random_seed(hp.random_seed)
        network = self._build(x.shape[1], x.shape[2])
        callbacks = [_StopWhenRequested(self)]
        validation_split = 0.0
        monitor = "loss"
        if len(x) * VALIDATION_FRACTION >= MIN_VALIDATION_SAMPLES:
            validation_split = VALIDATION_FRACTION
            monitor = "val_loss"
        if hp.early_stopping_patience:
            callbacks.append(
                EarlyStopping(
                    monitor=monitor,
                    patience=hp.early_stopping_patience,
                    restore_best_weights=True,
                )
            )
        history = network.fit(
            x,
            y,
            epochs=hp.epochs,
            batch_size=hp.batch_size,
            validation_split=validation_split,
            callbacks=callbacks,
            shuffle=False,
            verbose=0,
        )
        if self.stop_requested:
            raise TrainingFailure(
                "Training stopped on request", TrainingFailure.STOPPED
            )

        losses = history.history.get("loss", [])
        weights_finite = all(np.all(np.isfinite(w)) for w in network.get_weights())
        if not weights_finite or not losses or not np.isfinite(losses[-1]):
            raise TrainingFailure(
                "Network weights diverged", TrainingFailure.NON_CONVERGENCE
            )

        fitted = network.predict(x, verbose=0).ravel()
        self.network = network
        self.residuals = y - fitted

        metrics = regression_metrics(y, fitted)
        metrics["samples"] = float(len(y))
        metrics["epochs_trained"] = float(len(losses))
        logger.debug(
            "forecast.recurrent.fitted",
            model_type=self.model_type.value,
            samples=len(y),
            epochs_trained=len(losses),
        )
        return metrics

    def predict(self, series: SeriesFrame, start: int) -> np.ndarray:
        self._require_fitted()
        design = self._design(series)
        history = self._normalised_target(series).copy()
        predictions = []
        for t in range(start, len(series)):
            for i in range(max(t - self.context_length, 0), t):
                if not np.isfinite(history[i]):
                    history[i] = 1.0
            steps = self._steps(design, history, fill=True)
            window = self._window(steps, t, pad=True)
            value = float(self.network.predict(window[np.newaxis], verbose=0)[0, 0])
            history[t] = value
            predictions.append(value)
        return np.asarray(predictions, dtype=float) * self.level_for(series.entity_id)

    def _build(self, length: int, width: int) -> Sequential:
        hp = self.hyperparameters
        layer = LSTM if self.model_type is ModelType.LSTM else GRU
        network = Sequential()
        network.add(Input(shape=(length, width)))
        network.add(layer(hp.units))
        network.add(Dense(1))
        network.compile(
            optimizer=Adam(learning_rate=hp.learning_rate), loss="mean_squared_error"
        )
        return network

    def _design(self, series: SeriesFrame) -> np.ndarray:
        return design_matrix(
            series.timestamps,
            series.regressors,
            self.origin,
            self.hyperparameters.fourier_order,
        )

    def _steps(
        self, design: np.ndarray, normalised: np.ndarray, fill: bool = False
    ) -> np.ndarray:
        """Scaled design columns plus the previous step's normalised target."""
        if not len(design):
            return np.empty((0, design.shape[1] + 1), dtype=float)
        scaled = self.scaler.transform(np.nan_to_num(design, nan=0.0))
        if fill:
            scaled[~np.isfinite(design)] = 0.0
        else:
            scaled[~np.isfinite(design)] = np.nan
        lag = np.concatenate([[np.nan], normalised[:-1]])
        return np.column_stack([scaled, lag])

    def _window(
        self, steps: np.ndarray, t: int, pad: bool = False
    ) -> Optional[np.ndarray]:
        """The lookback window ending at ``t``; None when it has gaps."""
        length = self.context_length
        begin = t - length + 1
        if begin < 1:
            if not pad:
                return None
            padding = np.zeros((1 - begin, steps.shape[1]), dtype=float)
            padding[:, -1] = 1.0
            window = np.vstack([padding, steps[1 : t + 1]])[-length:]
        else:
            window = steps[begin : t + 1]
        if pad:
            return np.nan_to_num(window, nan=0.0)
        if not np.isfinite(window).all():
            return None
        return window

    def _state(self) -> Dict[str, Any]:
        with tempfile.NamedTemporaryFile(suffix=".keras", delete=False) as tmp:
            tmp_path = tmp.name
        try:
            self.network.save(tmp_path)
            with open(tmp_path, "rb") as handle:
                network_bytes = handle.read()
        finally:
            os.unlink(tmp_path)

        buffer = io.BytesIO()
        joblib.dump(self.scaler, buffer)
        return {"network": network_bytes, "scaler": buffer.getvalue()}

    def _restore(self, state: Dict[str, Any]) -> None:
        with tempfile.NamedTemporaryFile(suffix=".keras", delete=False) as tmp:
            tmp.write(state["network"])
            tmp.flush()
            tmp_path = tmp.name
        try:
            self.network = load_model(tmp_path)
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning("forecast.recurrent.tempfile_cleanup_failed", path=tmp_path)
        self.scaler = joblib.load(io.BytesIO(state["scaler"]))


class LSTMForecastModel(RecurrentForecastModel):
    model_type = ModelType.LSTM


class GRUForecastModel(RecurrentForecastModel):
    model_type = ModelType.GRU

