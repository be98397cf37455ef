"""
Infrastructure Services - Celery Configuration

Celery application used when retraining is dispatched to background
workers (``SCHEDULER_DISPATCH_MODE=celery``).
"""

import os
from typing import Optional

from celery import Celery

RETRAIN_TASK = "retrain_scope"
SCHEDULE_TASK = "schedule_retraining"


def create_celery_app(
    broker_url: Optional[str] = None,
    backend_url: Optional[str] = None,
    retraining_queue: str = "retraining",
    scheduling_queue: str = "retraining_scheduling",
) -> Celery:
    """
    Create and configure Celery application.

    Args:
        broker_url: Message broker URL (uses env var if not provided)
        backend_url: Result backend URL (uses env var if not provided)
        retraining_queue: Queue consumed by retraining workers
        scheduling_queue: Queue of the periodic sweep

    Returns:
        Configured Celery application
    """
    effective_broker = broker_url or os.getenv(
        "CELERY_BROKER_URL", "redis://redis:6379/0"
    )
    effective_backend = backend_url or os.getenv(
        "CELERY_RESULT_BACKEND", "redis://redis:6379/1"
    )

    app = Celery(
        "retail_forecast_worker",
        broker=effective_broker,
        backend=effective_backend,
        include=["retail_forecast.infrastructure.services.tasks.retraining"],
    )

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        result_expires=86400,
        task_routes={
            RETRAIN_TASK: {"queue": retraining_queue},
            SCHEDULE_TASK: {"queue": scheduling_queue},
        },
        # Fitting is CPU heavy: one task at a time per worker process
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        worker_max_tasks_per_child=20,
        task_default_retry_delay=60,
        task_max_retries=3,
    )

    return app


celery_app = create_celery_app()
