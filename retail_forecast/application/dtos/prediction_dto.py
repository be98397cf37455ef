"""
Application DTOs - Predictions

Response contracts of the serving API.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ConfidenceIntervalDTO(BaseModel):
    lower: float
    upper: float
    coverage: float = Field(..., gt=0.0, lt=1.0)


class PredictionResponseDTO(BaseModel):
    """DTO for a served prediction."""

    prediction_id: str
    model_id: str
    entity_scope: str
    entity_id: str
    target_timestamp: datetime
    predicted_value: float
    confidence_interval: ConfidenceIntervalDTO
    generated_at: datetime
