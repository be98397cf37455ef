"""Celery tasks of the retraining workers."""
