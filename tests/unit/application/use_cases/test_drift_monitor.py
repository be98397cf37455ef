from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.domain.entities.drift import AlertEvent, DriftSignal, DriftStatus
from retail_forecast.domain.entities.errors import AlertDeliveryError, ValidationError
from retail_forecast.domain.entities.prediction import (
    ActualObservation,
    ConfidenceInterval,
    Prediction,
)
from retail_forecast.infrastructure.memory import InMemoryDriftStateRepository

START = datetime(2024, 6, 1, tzinfo=timezone.utc)
SCOPE = "entity:north-a"
LOW = 0.05
HIGH = 0.50


def _pair(day: int, error: float, model_id: str = "model-1"):
    target = START + timedelta(days=day)
    prediction = Prediction(
        model_id=model_id,
        entity_scope=SCOPE,
        entity_id="north-a",
        target_timestamp=target,
        predicted_value=100.0 * (1.0 + error),
        confidence_interval=ConfidenceInterval(lower=80.0, upper=200.0),
    )
    return prediction, ActualObservation("north-a", target, 100.0)


async def _feed(monitor: DriftMonitor, errors: List[float], offset: int = 0, model_id="model-1"):
    signals = []
    for i, error in enumerate(errors):
        signals.append(await monitor.record(*_pair(offset + i, error, model_id)))
    return signals


def _transitions(signals: List[DriftSignal]):
    return [(s.previous_status, s.status) for s in signals if s.is_transition]


@pytest.mark.asyncio
async def test_rising_error_goes_ok_warning_breach_once(stack) -> None:
    signals = await _feed(stack.drift_monitor, [LOW] * 10 + [HIGH] * 5)

    assert all(s.status is DriftStatus.OK for s in signals[:10])
    assert _transitions(signals) == [
        (DriftStatus.OK, DriftStatus.WARNING),
        (DriftStatus.WARNING, DriftStatus.BREACH),
    ]
    assert signals[-1].status is DriftStatus.BREACH
    assert stack.alerts.statuses("drift") == ["warning", "breach"]


@pytest.mark.asyncio
async def test_status_holds_until_window_has_min_observations(stack) -> None:
    signals = await _feed(stack.drift_monitor, [HIGH] * 4)
    assert {s.status for s in signals} == {DriftStatus.OK}

    fifth = await stack.drift_monitor.record(*_pair(4, HIGH))
    assert fifth.status is DriftStatus.WARNING


@pytest.mark.asyncio
async def test_warning_recovers_when_error_falls(stack) -> None:
    signals = await _feed(stack.drift_monitor, [LOW] * 4 + [HIGH] + [LOW] * 5)

    assert _transitions(signals) == [
        (DriftStatus.OK, DriftStatus.WARNING),
        (DriftStatus.WARNING, DriftStatus.OK),
    ]


@pytest.mark.asyncio
async def test_breach_only_recovers_after_promoted_model_stays_low(stack) -> None:
    await _feed(stack.drift_monitor, [LOW] * 5 + [HIGH] * 5)
    assert (await stack.drift_monitor.get_signal(SCOPE)).status is DriftStatus.BREACH

    # Low error from the old model does not end the breach.
    stale = await _feed(stack.drift_monitor, [0.0] * 10, offset=10)
    assert stale[-1].status is DriftStatus.BREACH

    reset = await stack.drift_monitor.reset_for_model(SCOPE, "model-2")
    assert reset.status is DriftStatus.BREACH
    assert reset.value is None

    # Pairs of the replaced model are ignored while in breach.
    ignored = await stack.drift_monitor.record(*_pair(30, HIGH, "model-1"))
    assert ignored.value is None

    recovered = await _feed(stack.drift_monitor, [LOW] * 5, offset=40, model_id="model-2")
    assert [s.status for s in recovered][:4] == [DriftStatus.BREACH] * 4
    assert recovered[-1].status is DriftStatus.OK
    assert recovered[-1].previous_status is DriftStatus.BREACH
    assert stack.alerts.statuses("drift")[-1] == "ok"


@pytest.mark.asyncio
async def test_reset_outside_breach_returns_to_ok(stack) -> None:
    await _feed(stack.drift_monitor, [HIGH] * 5)
    assert (await stack.drift_monitor.get_signal(SCOPE)).status is DriftStatus.WARNING

    signal = await stack.drift_monitor.reset_for_model(SCOPE, "model-2")

    assert signal.status is DriftStatus.OK
    assert signal.model_id == "model-2"


@pytest.mark.asyncio
async def test_new_model_outside_breach_restarts_window(stack) -> None:
    await _feed(stack.drift_monitor, [HIGH] * 3)

    signal = await stack.drift_monitor.record(*_pair(3, LOW, "model-2"))

    assert signal.model_id == "model-2"
    assert signal.value == pytest.approx(LOW)


@pytest.mark.asyncio
async def test_breach_notifies_subscribers(stack) -> None:
    received: List[DriftSignal] = []

    async def listener(signal: DriftSignal) -> None:
        received.append(signal)

    stack.drift_monitor.subscribe(listener)
    await _feed(stack.drift_monitor, [LOW] * 5 + [HIGH] * 5)

    assert [s.status for s in received] == [DriftStatus.BREACH]
    assert received[0].entity_scope == SCOPE


@pytest.mark.asyncio
async def test_undeliverable_alert_does_not_break_monitoring() -> None:
    class FailingSink:
        def __init__(self) -> None:
            self.attempts = 0

        async def emit(self, event: AlertEvent) -> None:
            self.attempts += 1
            raise AlertDeliveryError("receiver down")

    sink = FailingSink()
    monitor = DriftMonitor(InMemoryDriftStateRepository(), sink, window_size=2)

    signals = await _feed(monitor, [HIGH] * 2)

    assert signals[-1].status is DriftStatus.WARNING
    assert sink.attempts == 1


@pytest.mark.asyncio
async def test_mismatched_pair_is_rejected(stack) -> None:
    prediction, _ = _pair(0, LOW)
    observation = ActualObservation("north-a", START + timedelta(days=1), 100.0)

    with pytest.raises(ValidationError):
        await stack.drift_monitor.record(prediction, observation)


def test_invalid_configuration_is_rejected() -> None:
    with pytest.raises(ValidationError):
        DriftMonitor(InMemoryDriftStateRepository(), None, threshold_low=0.3, threshold_high=0.2)
    with pytest.raises(ValidationError):
        DriftMonitor(InMemoryDriftStateRepository(), None, window_size=0)


@pytest.mark.asyncio
async def test_list_signals_reports_every_scope(stack) -> None:
    await _feed(stack.drift_monitor, [LOW])

    signals = await stack.drift_monitor.list_signals()

    assert [s.entity_scope for s in signals] == [SCOPE]
    assert signals[0].error_metric == "mape"


@pytest.mark.asyncio
async def test_same_pair_twice_occupies_one_slot(stack) -> None:
    first = await stack.drift_monitor.record(*_pair(0, HIGH))
    again = await stack.drift_monitor.record(*_pair(0, HIGH))

    state = await stack.drift_states.get(SCOPE)
    assert state.size == 1
    assert again.value == first.value
    assert not again.is_transition


@pytest.mark.asyncio
async def test_corrected_actual_replaces_its_slot(stack) -> None:
    prediction, _ = _pair(0, HIGH)
    await stack.drift_monitor.record(prediction, ActualObservation("north-a", START, 100.0))

    corrected = await stack.drift_monitor.record(
        prediction, ActualObservation("north-a", START, prediction.predicted_value)
    )

    assert corrected.value == pytest.approx(0.0)
    assert (await stack.drift_states.get(SCOPE)).size == 1


@pytest.mark.asyncio
async def test_zero_sales_day_is_bounded_and_leaves_no_residue(alert_sink) -> None:
    monitor = DriftMonitor(
        InMemoryDriftStateRepository(),
        alert_sink,
        window_size=30,
        threshold_low=0.10,
        threshold_high=0.20,
        consecutive_windows=3,
    )
    await _feed(monitor, [0.01] * 30)

    target = START + 30 * timedelta(days=1)
    empty_shelf = Prediction(
        model_id="model-1",
        entity_scope=SCOPE,
        entity_id="north-a",
        target_timestamp=target,
        predicted_value=101.0,
        confidence_interval=ConfidenceInterval(lower=80.0, upper=120.0),
    )
    spike = await monitor.record(empty_shelf, ActualObservation("north-a", target, 0.0))

    assert spike.value == pytest.approx((29 * 0.01 + monitor.error_cap) / 30)
    assert spike.status is DriftStatus.OK

    after = await _feed(monitor, [0.01] * 30, offset=31)

    assert after[-1].value == pytest.approx(0.01, rel=1e-9)
    assert {s.status for s in after} == {DriftStatus.OK}
    assert alert_sink.statuses("drift") == []
