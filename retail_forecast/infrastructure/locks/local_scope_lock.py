"""Process-local scope lock for single-process deployments and tests."""

import threading
import time
from typing import Dict, Tuple


class LocalScopeLock:
    """Scope lock held in process memory; expired leases can be taken over."""

    def __init__(self):
        self._holders: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    async def acquire(self, scope: str, owner: str, ttl_seconds: float) -> bool:
        now = time.monotonic()
        with self._lock:
            holder = self._holders.get(scope)
            if holder is not None and holder[0] != owner and holder[1] > now:
                return False
            self._holders[scope] = (owner, now + ttl_seconds)
            return True

    async def release(self, scope: str, owner: str) -> None:
        with self._lock:
            holder = self._holders.get(scope)
            if holder is not None and holder[0] == owner:
                del self._holders[scope]

    async def is_locked(self, scope: str) -> bool:
        with self._lock:
            holder = self._holders.get(scope)
            return holder is not None and holder[1] > time.monotonic()
