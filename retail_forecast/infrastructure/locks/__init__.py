"""Scope lock implementations."""

from .local_scope_lock import LocalScopeLock
from .mongo_scope_lock import MongoScopeLock

__all__ = ["LocalScopeLock", "MongoScopeLock"]
