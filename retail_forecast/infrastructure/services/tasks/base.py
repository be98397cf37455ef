"""Shared Celery infrastructure components."""

from typing import Any, Callable, Optional

import structlog
from celery import Task

logger = structlog.get_logger(__name__)

SchedulerFactory = Callable[[bool], Any]

_scheduler_factory: Optional[SchedulerFactory] = None


def configure_scheduler_factory(factory: SchedulerFactory) -> None:
    """
    Register how tasks obtain a retraining scheduler.

    The worker entry point installs a factory built from its container;
    ``factory(dispatching)`` returns a scheduler that either runs jobs in the
    task process (False) or sends them to the retraining queue (True).
    """
    global _scheduler_factory
    _scheduler_factory = factory


def get_scheduler(dispatching: bool = False) -> Any:
    if _scheduler_factory is None:
        raise RuntimeError("Scheduler factory has not been configured")
    return _scheduler_factory(dispatching)


class CallbackTask(Task):
    """Base task class that centralizes logging behaviour."""

    def on_success(self, retval, task_id, args, kwargs):
        logger.info("task.succeeded", task_id=task_id, result=retval)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            "task.failed",
            task_id=task_id,
            error=str(exc),
            traceback=einfo.traceback,
            exc_info=exc,
        )

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning("task.retrying", task_id=task_id, error=str(exc))
