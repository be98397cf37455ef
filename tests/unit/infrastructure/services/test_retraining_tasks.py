from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from retail_forecast.application.use_cases.retraining_scheduler import SweepSummary
from retail_forecast.domain.entities.errors import TransientStorageError
from retail_forecast.domain.entities.training_job import TrainingReason, TrainingStatus
from retail_forecast.infrastructure.services.tasks import base
from retail_forecast.infrastructure.services.tasks.retraining import (
    retrain_scope,
    schedule_retraining,
)


class FakeScheduler:
    interval = timedelta(seconds=120)

    def __init__(self, job=None, sweep_error=None) -> None:
        self.job = job
        self.sweep_error = sweep_error
        self.triggers = []

    async def trigger(self, scope, reason, end=None, hyperparameters=None, wait=False):
        self.triggers.append((str(scope), reason, end, hyperparameters, wait))
        return self.job

    async def run_due(self, now):
        if self.sweep_error is not None:
            raise self.sweep_error
        return SweepSummary(started=["cluster:north"], skipped={"entity:x": "not_due"})


@pytest.fixture()
def install_scheduler(monkeypatch):
    modes = []

    def install(scheduler):
        def factory(dispatching: bool):
            modes.append(dispatching)
            return scheduler

        monkeypatch.setattr(base, "_scheduler_factory", factory)
        return modes

    return install


def test_retrain_scope_runs_job_in_worker(install_scheduler) -> None:
    job = SimpleNamespace(
        id=uuid4(),
        status=TrainingStatus.COMPLETED,
        promoted=True,
        candidate_model_id="model-7",
    )
    scheduler = FakeScheduler(job)
    modes = install_scheduler(scheduler)

    result = retrain_scope.run(
        entity_scope="cluster:north",
        reason="schedule",
        end="2024-06-01T00:00:00+00:00",
        hyperparameters={"alpha": 2.0, "regressors": ["temperature"]},
    )

    assert modes == [False]
    scope, reason, end, hyperparameters, wait = scheduler.triggers[0]
    assert (scope, reason, wait) == ("cluster:north", TrainingReason.SCHEDULE, True)
    assert end == datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert hyperparameters.alpha == 2.0
    assert result["status"] == "completed"
    assert result["promoted"] is True
    assert result["training_job_id"] == str(job.id)


def test_retrain_scope_reports_skipped_trigger(install_scheduler) -> None:
    install_scheduler(FakeScheduler(job=None))

    result = retrain_scope.run(entity_scope="entity:north-a")

    assert result == {"entity_scope": "entity:north-a", "status": "skipped"}


def test_sweep_dispatches_and_reschedules(install_scheduler, monkeypatch) -> None:
    modes = install_scheduler(FakeScheduler())
    apply_async = MagicMock()
    monkeypatch.setattr(schedule_retraining, "apply_async", apply_async)

    result = schedule_retraining.run(interval_seconds=None)

    assert modes == [True]
    assert result["started"] == ["cluster:north"]
    assert result["next_iteration_in"] == 120
    apply_async.assert_called_once_with(kwargs={"interval_seconds": 120}, countdown=120)


def test_sweep_reschedules_even_when_it_fails(install_scheduler, monkeypatch) -> None:
    install_scheduler(FakeScheduler(sweep_error=TransientStorageError("mongo down")))
    apply_async = MagicMock()
    monkeypatch.setattr(schedule_retraining, "apply_async", apply_async)

    with pytest.raises(TransientStorageError):
        schedule_retraining.run(interval_seconds=300)

    apply_async.assert_called_once_with(kwargs={"interval_seconds": 300}, countdown=300)


def test_get_scheduler_requires_factory(monkeypatch) -> None:
    monkeypatch.setattr(base, "_scheduler_factory", None)

    with pytest.raises(RuntimeError):
        base.get_scheduler()
