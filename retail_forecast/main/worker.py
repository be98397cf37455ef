#!/usr/bin/env python3
"""
Worker Entry Point - Main Layer

This module serves as the entry point for the Celery worker that runs
retraining jobs and the periodic retraining sweep. Like app.py, it builds
the container; tasks obtain their schedulers from it.
"""

import os

from celery.signals import worker_ready

from retail_forecast.main.config import get_settings
from retail_forecast.main.container import init_container
from retail_forecast.shared import (
    configure_logging,
    get_logger,
    update_logging_from_settings,
)

# Configure logging with basic settings first
configure_logging()

logger = get_logger(__name__)


def create_worker():
    """
    Configure and return the Celery worker.

    Similar to create_app() in app.py, this function wires the task
    dependencies and returns the Celery application.
    """
    settings = get_settings()
    update_logging_from_settings(settings)

    os.environ.setdefault("CELERY_BROKER_URL", settings.celery.broker_url)
    os.environ.setdefault("CELERY_RESULT_BACKEND", settings.celery.result_backend_url)

    from retail_forecast.infrastructure.services.celery_config import celery_app
    from retail_forecast.infrastructure.services.tasks.base import (
        configure_scheduler_factory,
    )

    container = init_container(settings)

    def scheduler_factory(dispatching: bool):
        if dispatching:
            return container.sweep_scheduler()
        return container.worker_scheduler()

    configure_scheduler_factory(scheduler_factory)

    worker_app = celery_app
    worker_app.conf.update(
        broker_url=settings.celery.broker_url,
        result_backend=settings.celery.result_backend_url,
    )
    worker_app.conf.task_routes = {
        "retrain_scope": {"queue": settings.celery.retraining_queue},
        "schedule_retraining": {"queue": settings.celery.scheduling_queue},
    }

    @worker_ready.connect(weak=False)
    def start_sweep(sender=None, **kwargs):
        """Start the self-rescheduling sweep once per worker start."""
        from retail_forecast.infrastructure.services.tasks.retraining import (
            schedule_retraining,
        )

        schedule_retraining.apply_async(
            kwargs={"interval_seconds": int(settings.scheduler.interval_seconds)},
            countdown=int(settings.scheduler.interval_seconds),
        )
        logger.info(
            "worker.sweep.scheduled",
            interval_seconds=settings.scheduler.interval_seconds,
        )

    logger.info(
        "Configuring Celery worker",
        broker_url=settings.celery.broker_url,
        backend_url=settings.celery.result_backend_url,
        app_name=worker_app.main,
        storage_backend=settings.database.storage_backend.value,
    )

    return worker_app


def main():
    """Main entry point for Celery worker."""

    logger.info("Starting Celery worker")

    settings = get_settings()
    worker_app = create_worker()

    worker_app.worker_main(
        [
            "worker",
            "--loglevel=info",
            f"--queues={settings.celery.retraining_queue},"
            f"{settings.celery.scheduling_queue}",
            "--concurrency=2",  # Limit concurrency for model fitting
            "--max-tasks-per-child=10",  # Restart workers for memory mgmt
        ]
    )


if __name__ == "__main__":
    main()
