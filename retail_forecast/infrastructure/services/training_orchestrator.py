"""Celery-backed implementation of the retraining dispatcher port."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from retail_forecast.domain.ports.training_orchestrator import IRetrainingDispatcher
from retail_forecast.infrastructure.services.celery_config import (
    RETRAIN_TASK,
    SCHEDULE_TASK,
    celery_app,
)
from retail_forecast.shared import get_logger

logger = get_logger(__name__)


class CeleryRetrainingDispatcher(IRetrainingDispatcher):
    """Dispatch retraining jobs through Celery."""

    def __init__(
        self,
        queue_name: str = "retraining",
        scheduling_queue: str = "retraining_scheduling",
    ) -> None:
        self._queue_name = queue_name
        self._scheduling_queue = scheduling_queue

    async def dispatch_retraining(
        self,
        *,
        entity_scope: str,
        reason: str,
        end: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Send the retraining task to Celery asynchronously."""

        def _send_task() -> str:
            logger.info(
                "retraining_dispatcher.dispatch",
                entity_scope=entity_scope,
                reason=reason,
                queue=self._queue_name,
            )
            result = celery_app.send_task(
                RETRAIN_TASK,
                kwargs={
                    "entity_scope": entity_scope,
                    "reason": reason,
                    "end": end,
                    "hyperparameters": hyperparameters,
                },
                queue=self._queue_name,
            )
            return result.id

        task_id: Optional[str] = await asyncio.to_thread(_send_task)
        return task_id or ""

    async def start_sweep(self, interval_seconds: int) -> str:
        """Kick off the self-rescheduling sweep task."""

        def _send_task() -> str:
            result = celery_app.send_task(
                SCHEDULE_TASK,
                kwargs={"interval_seconds": interval_seconds},
                queue=self._scheduling_queue,
            )
            return result.id

        task_id: Optional[str] = await asyncio.to_thread(_send_task)
        logger.info("retraining_dispatcher.sweep_started", task_id=task_id)
        return task_id or ""
