"""Application DTOs - Drift"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from retail_forecast.domain.entities.drift import DriftStatus


class DriftSignalDTO(BaseModel):
    """DTO for the drift evaluation of one scope."""

    entity_scope: str
    status: DriftStatus
    error_metric: str
    value: Optional[float] = None
    threshold: float
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    model_id: Optional[str] = None
