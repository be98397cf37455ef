"""
Application Use Case - Drift Monitor

Keeps a rolling absolute-percentage-error window per scope and runs the
ok / warning / breach state machine on every (prediction, actual) pair.

Transitions, at most one per update and only once ``min_observations``
pairs are in the window:

* ok -> warning when the rolling metric exceeds ``threshold_low``
* warning -> breach after ``consecutive_windows`` consecutive updates above
  ``threshold_high``
* warning -> ok when the metric falls back to ``threshold_low`` or below
* breach -> ok only after ``reset_for_model`` reported a promoted
  replacement and a full window of that model stays below ``threshold_low``

Every transition goes to the alert sink; entering breach is also delivered
to subscribers.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from retail_forecast.application.forecasting.metrics import (
    DEFAULT_DENOMINATOR_FLOOR,
    DEFAULT_ERROR_CAP,
    absolute_percentage_error,
)
from retail_forecast.domain.entities.drift import (
    AlertEvent,
    DriftSignal,
    DriftState,
    DriftStatus,
)
from retail_forecast.domain.entities.errors import (
    AlertDeliveryError,
    DomainError,
    ValidationError,
)
from retail_forecast.domain.entities.prediction import ActualObservation, Prediction
from retail_forecast.domain.ports.alert_sink import IAlertSink
from retail_forecast.domain.repositories.drift_state_repository import (
    IDriftStateRepository,
)

logger = structlog.get_logger(__name__)

DriftListener = Callable[[DriftSignal], Awaitable[None]]

ERROR_METRIC = "mape"


class DriftMonitor:
    """Per-scope drift state machine over live prediction error."""

    def __init__(
        self,
        state_repository: IDriftStateRepository,
        alert_sink: IAlertSink,
        window_size: int = 30,
        threshold_low: float = 0.10,
        threshold_high: float = 0.20,
        consecutive_windows: int = 3,
        min_observations: Optional[int] = None,
        denominator_floor: float = DEFAULT_DENOMINATOR_FLOOR,
        error_cap: float = DEFAULT_ERROR_CAP,
    ):
        if window_size <= 0 or consecutive_windows <= 0:
            raise ValidationError(
                "window_size and consecutive_windows must be positive"
            )
        if not 0.0 <= threshold_low < threshold_high:
            raise ValidationError("Drift thresholds must satisfy 0 <= low < high")
        self.state_repository = state_repository
        self.alert_sink = alert_sink
        self.window_size = window_size
        self.threshold_low = threshold_low
        self.threshold_high = threshold_high
        self.consecutive_windows = consecutive_windows
        self.min_observations = min(
            min_observations if min_observations is not None else window_size,
            window_size,
        )
        self.denominator_floor = denominator_floor
        self.error_cap = error_cap
        self._listeners: List[DriftListener] = []
        # One lock per scope seen by this instance, bound to the running loop.
        # Worker tasks build a fresh monitor per asyncio.run, so neither the
        # loop binding nor the per-scope growth outlives a task.
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def subscribe(self, listener: DriftListener) -> None:
        """Register a coroutine called whenever a scope enters breach."""
        self._listeners.append(listener)

    async def record(
        self, prediction: Prediction, observation: ActualObservation
    ) -> DriftSignal:
        """Fold one (prediction, actual) pair into the scope's window."""
        if (prediction.entity_id, prediction.target_timestamp) != observation.key:
            raise ValidationError(
                "Observation does not match the prediction target",
                {
                    "prediction_id": prediction.prediction_id,
                    "entity_id": observation.entity_id,
                },
            )
        scope = prediction.entity_scope
        async with self._locks[scope]:
            state = await self.state_repository.get(scope) or DriftState(
                entity_scope=scope, model_id=prediction.model_id
            )
            previous = state.status

            if state.model_id != prediction.model_id:
                if state.status is DriftStatus.BREACH:
                    logger.debug(
                        "drift.pair.ignored",
                        scope=scope,
                        model_id=prediction.model_id,
                        tracked_model_id=state.model_id,
                    )
                    return self._signal(state)
                # Replaced outside a breach: start over for the new model.
                state.reset_window(prediction.model_id)
                state.status = DriftStatus.OK

            error = absolute_percentage_error(
                observation.observed_value,
                prediction.predicted_value,
                self.denominator_floor,
                self.error_cap,
            )
            slot = state.position(observation.entity_id, observation.timestamp)
            if slot is not None and state.errors[slot] == error:
                logger.debug(
                    "drift.pair.duplicate",
                    scope=scope,
                    entity_id=observation.entity_id,
                    timestamp=observation.timestamp.isoformat(),
                )
                return self._signal(state)
            if slot is not None:
                metric = state.replace(slot, error)
            else:
                metric = state.push(
                    error,
                    observation.timestamp,
                    self.window_size,
                    observation.entity_id,
                )
            state.status = self._next_status(state, metric)
            await self.state_repository.save(state)
            signal = self._signal(state, previous)

        if signal.is_transition:
            await self._on_transition(signal)
        return signal

    async def reset_for_model(self, scope: str, model_id: str) -> DriftSignal:
        """
        Report that ``model_id`` became the active model of ``scope``.

        Inside a breach the window restarts on the new model and recovery
        becomes possible; otherwise the scope returns to ok immediately.
        """
        async with self._locks[scope]:
            state = await self.state_repository.get(scope) or DriftState(
                entity_scope=scope
            )
            previous = state.status
            state.reset_window(model_id)
            if state.status is DriftStatus.BREACH:
                state.retrained = True
            else:
                state.status = DriftStatus.OK
            await self.state_repository.save(state)
            signal = self._signal(state, previous)

        logger.info(
            "drift.reset",
            scope=scope,
            model_id=model_id,
            status=signal.status.value,
        )
        if signal.is_transition:
            await self._on_transition(signal)
        return signal

    async def get_signal(self, scope: str) -> DriftSignal:
        state = await self.state_repository.get(scope)
        return self._signal(state or DriftState(entity_scope=scope))

    async def list_signals(self) -> List[DriftSignal]:
        return [self._signal(state) for state in await self.state_repository.list_all()]

    def _next_status(self, state: DriftState, metric: float) -> DriftStatus:
        if metric > self.threshold_high:
            state.consecutive_high += 1
        else:
            state.consecutive_high = 0

        if state.size < self.min_observations:
            return state.status

        if state.status is DriftStatus.OK:
            return DriftStatus.WARNING if metric > self.threshold_low else DriftStatus.OK
        if state.status is DriftStatus.WARNING:
            if metric <= self.threshold_low:
                return DriftStatus.OK
            if state.consecutive_high >= self.consecutive_windows:
                return DriftStatus.BREACH
            return DriftStatus.WARNING
        if (
            state.retrained
            and state.size >= self.window_size
            and metric < self.threshold_low
        ):
            state.retrained = False
            state.consecutive_high = 0
            return DriftStatus.OK
        return DriftStatus.BREACH

    def _signal(
        self, state: DriftState, previous: Optional[DriftStatus] = None
    ) -> DriftSignal:
        threshold = (
            self.threshold_low if state.status is DriftStatus.OK else self.threshold_high
        )
        return DriftSignal(
            entity_scope=state.entity_scope,
            status=state.status,
            error_metric=ERROR_METRIC,
            value=state.metric,
            threshold=threshold,
            window_start=state.window_start,
            window_end=state.window_end,
            model_id=state.model_id,
            previous_status=previous,
        )

    async def _on_transition(self, signal: DriftSignal) -> None:
        logger.warning(
            "drift.transition",
            scope=signal.entity_scope,
            previous=signal.previous_status.value,
            status=signal.status.value,
            metric=signal.value,
            model_id=signal.model_id,
        )
        event = AlertEvent(
            entity_scope=signal.entity_scope,
            status=signal.status.value,
            metric=signal.value,
            timestamp=datetime.now(timezone.utc),
            window_end=signal.window_end,
            details={
                "previous_status": signal.previous_status.value,
                "error_metric": signal.error_metric,
                "threshold": signal.threshold,
                "model_id": signal.model_id,
            },
        )
        try:
            await self.alert_sink.emit(event)
        except AlertDeliveryError as exc:
            logger.error(
                "drift.alert.undelivered",
                scope=signal.entity_scope,
                error=exc.message,
                details=exc.details,
            )

        if signal.status is not DriftStatus.BREACH:
            return
        for listener in self._listeners:
            try:
                await listener(signal)
            except DomainError as exc:
                logger.error(
                    "drift.listener.failed",
                    scope=signal.entity_scope,
                    error=exc.message,
                    details=exc.details,
                )
