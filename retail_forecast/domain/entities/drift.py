"""
Domain Entities - Drift

Rolling prediction-error state per scope and the signals derived from it.
The window is maintained incrementally (running sum) so an update costs O(1)
amortised regardless of how many pairs were seen.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class DriftStatus(str, Enum):
    """Drift state machine states."""

    OK = "ok"
    WARNING = "warning"
    BREACH = "breach"


@dataclass(frozen=True)
class DriftSignal:
    """Drift evaluation of one scope over its rolling window."""

    entity_scope: str
    status: DriftStatus
    error_metric: str
    value: Optional[float]
    threshold: float
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    model_id: Optional[str] = None
    previous_status: Optional[DriftStatus] = None

    @property
    def is_transition(self) -> bool:
        return self.previous_status is not None and self.previous_status != self.status


@dataclass
class DriftState:
    """Persisted rolling window for one scope.

    Each ``(entity_id, timestamp)`` occupies at most one slot of the window.
    """

    entity_scope: str
    status: DriftStatus = DriftStatus.OK
    model_id: Optional[str] = None
    errors: List[float] = field(default_factory=list)
    timestamps: List[datetime] = field(default_factory=list)
    entity_ids: List[Optional[str]] = field(default_factory=list)
    error_sum: float = 0.0
    consecutive_high: int = 0
    retrained: bool = False
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def push(
        self,
        error: float,
        timestamp: datetime,
        window_size: int,
        entity_id: Optional[str] = None,
    ) -> float:
        """Add one error to the window and return the rolling mean."""
        self.errors.append(error)
        self.timestamps.append(timestamp)
        self.entity_ids.append(entity_id)
        self.error_sum += error
        while len(self.errors) > window_size:
            self._drop(self.errors.pop(0))
            self.timestamps.pop(0)
            self.entity_ids.pop(0)
        self.updated_at = datetime.now(timezone.utc)
        return self.metric or 0.0

    def position(self, entity_id: str, timestamp: datetime) -> Optional[int]:
        for index, key in enumerate(zip(self.entity_ids, self.timestamps)):
            if key == (entity_id, timestamp):
                return index
        return None

    def replace(self, index: int, error: float) -> float:
        """Overwrite the error of an existing slot, e.g. a corrected actual."""
        previous = self.errors[index]
        self.errors[index] = error
        self.error_sum += error
        self._drop(previous)
        self.updated_at = datetime.now(timezone.utc)
        return self.metric or 0.0

    def _drop(self, error: float) -> None:
        self.error_sum -= error
        # Subtracting a value that dwarfs the remainder loses its precision.
        if abs(error) > abs(self.error_sum):
            self.error_sum = math.fsum(self.errors)

    @property
    def metric(self) -> Optional[float]:
        if not self.errors:
            return None
        return max(self.error_sum, 0.0) / len(self.errors)

    @property
    def size(self) -> int:
        return len(self.errors)

    @property
    def window_start(self) -> Optional[datetime]:
        return min(self.timestamps) if self.timestamps else None

    @property
    def window_end(self) -> Optional[datetime]:
        return max(self.timestamps) if self.timestamps else None

    def reset_window(self, model_id: Optional[str]) -> None:
        self.model_id = model_id
        self.errors = []
        self.timestamps = []
        self.entity_ids = []
        self.error_sum = 0.0
        self.consecutive_high = 0
        self.updated_at = datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlertEvent:
    """Structured event for the external notification collaborator.

    Delivery is at-least-once; consumers dedupe on ``dedupe_key``.
    """

    entity_scope: str
    status: str
    metric: Optional[float]
    timestamp: datetime
    window_end: Optional[datetime] = None
    kind: str = "drift"
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedupe_key(self) -> tuple:
        window_end = self.window_end.isoformat() if self.window_end else None
        return (self.entity_scope, self.status, window_end)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "entity_scope": self.entity_scope,
            "status": self.status,
            "metric": self.metric,
            "timestamp": self.timestamp.isoformat(),
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "kind": self.kind,
            "details": self.details,
        }
