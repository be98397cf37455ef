"""
Domain Entities - Training Job

A retraining job for one scope: training a candidate, back-testing it against
the incumbent on a holdout window and, if it wins by the configured margin,
promoting it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4


class TrainingStatus(str, Enum):
    """Status of a training job."""

    PENDING = "pending"
    TRAINING = "training"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


FINISHED_STATUSES = frozenset(
    {TrainingStatus.COMPLETED, TrainingStatus.FAILED, TrainingStatus.CANCELLED}
)


class TrainingReason(str, Enum):
    """Why a job was started."""

    DRIFT_BREACH = "drift_breach"
    SCHEDULE = "schedule"
    MANUAL = "manual"


@dataclass
class TrainingJob:
    """Represents one retraining cycle for a scope."""

    entity_scope: str
    reason: TrainingReason = TrainingReason.SCHEDULE
    id: UUID = field(default_factory=uuid4)
    status: TrainingStatus = TrainingStatus.PENDING

    # Results
    candidate_model_id: Optional[str] = None
    candidate_scope: Optional[str] = None
    candidate_error: Optional[float] = None
    incumbent_model_id: Optional[str] = None
    incumbent_error: Optional[float] = None
    promoted: bool = False

    # Error handling
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None

    # Timing
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def update_timestamp(self) -> None:
        """Update the 'updated_at' timestamp to current time."""
        self.updated_at = datetime.now(timezone.utc)

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def mark_training(self) -> None:
        self.status = TrainingStatus.TRAINING
        self.start_time = datetime.now(timezone.utc)
        self.update_timestamp()

    def mark_evaluating(self, candidate_model_id: str, candidate_scope: str) -> None:
        self.status = TrainingStatus.EVALUATING
        self.candidate_model_id = candidate_model_id
        self.candidate_scope = candidate_scope
        self.update_timestamp()

    def mark_completed(
        self,
        *,
        promoted: bool,
        candidate_error: Optional[float],
        incumbent_error: Optional[float],
        incumbent_model_id: Optional[str] = None,
    ) -> None:
        self.status = TrainingStatus.COMPLETED
        self.promoted = promoted
        self.candidate_error = candidate_error
        self.incumbent_error = incumbent_error
        self.incumbent_model_id = incumbent_model_id
        self.end_time = datetime.now(timezone.utc)
        self.update_timestamp()

    def mark_failed(
        self, error: str, error_details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Mark training job as failed."""
        self.status = TrainingStatus.FAILED
        self.error = error
        self.error_details = error_details
        self.end_time = datetime.now(timezone.utc)
        self.update_timestamp()

    def mark_cancelled(self) -> None:
        self.status = TrainingStatus.CANCELLED
        self.end_time = datetime.now(timezone.utc)
        self.update_timestamp()

    def get_total_duration(self) -> Optional[float]:
        """Get total duration in seconds, if finished."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def finished_at(self) -> datetime:
        return self.end_time or self.created_at
