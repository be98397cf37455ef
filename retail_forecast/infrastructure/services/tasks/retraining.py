"""Celery tasks running retraining jobs and the periodic retraining sweep."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import TransientStorageError
from retail_forecast.domain.entities.model_artifact import ModelHyperparameters
from retail_forecast.domain.entities.training_job import TrainingReason
from retail_forecast.infrastructure.services.celery_config import (
    RETRAIN_TASK,
    SCHEDULE_TASK,
    celery_app,
)
from retail_forecast.infrastructure.services.tasks.base import (
    CallbackTask,
    get_scheduler,
    logger,
)

_DEFAULT_SWEEP_INTERVAL = 3600


@celery_app.task(bind=True, base=CallbackTask, name=RETRAIN_TASK, max_retries=3)
def retrain_scope(
    self,
    entity_scope: str,
    reason: str = TrainingReason.MANUAL.value,
    end: Optional[str] = None,
    hyperparameters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Run one retraining job for ``entity_scope`` inside this worker."""
    scope = EntityScope.parse(entity_scope)
    end_time = datetime.fromisoformat(end) if end else None
    hp = ModelHyperparameters.from_dict(hyperparameters) if hyperparameters else None

    scheduler = get_scheduler(dispatching=False)
    try:
        job = asyncio.run(
            scheduler.trigger(
                scope,
                TrainingReason(reason),
                end=end_time,
                hyperparameters=hp,
                wait=True,
            )
        )
    except TransientStorageError as exc:
        logger.warning(
            "retraining.task.transient_error",
            scope=entity_scope,
            error=exc.message,
            retries=self.request.retries,
        )
        raise self.retry(exc=exc, countdown=30 * 2**self.request.retries)

    if job is None:
        logger.info("retraining.task.skipped", scope=entity_scope, reason=reason)
        return {"entity_scope": entity_scope, "status": "skipped"}

    return {
        "entity_scope": entity_scope,
        "training_job_id": str(job.id),
        "status": job.status.value,
        "promoted": job.promoted,
        "candidate_model_id": job.candidate_model_id,
    }


@celery_app.task(bind=True, base=CallbackTask, name=SCHEDULE_TASK)
def schedule_retraining(self, interval_seconds: Optional[int] = None) -> Dict[str, Any]:
    """Sweep every scope, dispatch the due ones and reschedule itself."""
    now = datetime.now(timezone.utc)
    scheduler = get_scheduler(dispatching=True)
    try:
        summary = asyncio.run(scheduler.run_due(now))
    finally:
        countdown = int(interval_seconds or scheduler.interval.total_seconds())
        countdown = max(countdown or _DEFAULT_SWEEP_INTERVAL, 1)
        self.apply_async(kwargs={"interval_seconds": countdown}, countdown=countdown)

    return {
        "started": summary.started,
        "skipped": summary.skipped,
        "flagged": summary.flagged,
        "timestamp": now.isoformat(),
        "next_iteration_in": countdown,
    }
