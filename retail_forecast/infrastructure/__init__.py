"""
Infrastructure Layer

MongoDB and in-memory storage, scope locks, alert sinks and the Celery
retraining services.
"""
