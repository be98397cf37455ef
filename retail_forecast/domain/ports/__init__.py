"""Domain ports package."""

from .alert_sink import IAlertSink
from .scope_lock import IScopeLock
from .training_orchestrator import IRetrainingDispatcher

__all__ = ["IAlertSink", "IRetrainingDispatcher", "IScopeLock"]
