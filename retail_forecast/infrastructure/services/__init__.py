"""Infrastructure services: Celery configuration, tasks and dispatcher."""
