"""
Application DTOs - Training

DTOs for retraining requests and training job status.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from retail_forecast.domain.entities.training_job import TrainingReason, TrainingStatus

from .model_dto import HyperparametersDTO


class TrainingRequestDTO(BaseModel):
    """DTO for a manual retraining request."""

    end: Optional[datetime] = Field(
        default=None,
        description="End of the holdout window; defaults to today (UTC midnight)",
    )
    hyperparameters: Optional[HyperparametersDTO] = None


class TrainingJobDTO(BaseModel):
    """DTO for training job status and details."""

    id: UUID
    entity_scope: str
    reason: TrainingReason
    status: TrainingStatus

    # Results
    candidate_model_id: Optional[str] = None
    candidate_scope: Optional[str] = None
    candidate_error: Optional[float] = None
    incumbent_model_id: Optional[str] = None
    incumbent_error: Optional[float] = None
    promoted: bool = False

    # Timing
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: datetime

    # Error handling
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None


class TrainingTriggerResponseDTO(BaseModel):
    """DTO returned when a retraining is requested."""

    entity_scope: str
    dispatched: bool
    message: str
    job: Optional[TrainingJobDTO] = None
