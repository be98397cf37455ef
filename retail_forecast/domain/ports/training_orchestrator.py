"""Domain port for retraining dispatch."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class IRetrainingDispatcher(Protocol):
    """Defines how retraining jobs are dispatched to background workers."""

    async def dispatch_retraining(
        self,
        *,
        entity_scope: str,
        reason: str,
        end: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Queue a retraining job for asynchronous execution.

        Returns:
            Identifier of the dispatched task.
        """
        ...
