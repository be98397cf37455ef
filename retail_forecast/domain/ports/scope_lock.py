"""Domain port for per-scope mutual exclusion of retraining jobs."""

from __future__ import annotations

from typing import Protocol


class IScopeLock(Protocol):
    """At most one holder per scope across every scheduler process."""

    async def acquire(self, scope: str, owner: str, ttl_seconds: float) -> bool:
        """Try to take the lock without waiting.

        Returns:
            True when ``owner`` now holds the lock for ``scope``.
        """
        ...

    async def release(self, scope: str, owner: str) -> None:
        """Release the lock if ``owner`` still holds it."""
        ...

    async def is_locked(self, scope: str) -> bool:
        ...
