"""
Domain module - Domain Layer

Entities, error taxonomy, repository interfaces and ports of the forecasting
pipeline. Nothing in here depends on MongoDB, FastAPI, Celery or the
numerical stack.
"""
