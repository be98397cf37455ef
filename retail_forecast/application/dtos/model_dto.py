"""
Application DTOs - Model artifacts

DTOs for model artifacts, their hyperparameters and promotion requests.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from retail_forecast.domain.entities.model_artifact import ArtifactStatus, ModelType


class HyperparametersDTO(BaseModel):
    """DTO for model hyperparameters; unset fields keep their defaults."""

    model_type: ModelType = ModelType.CLIMATE_REGRESSION
    target_feature: str = "sales"
    regressors: List[str] = Field(default_factory=list)
    random_seed: int = 42
    alpha: float = Field(default=1.0, ge=0.0)
    fourier_order: int = Field(default=2, ge=0, le=10)
    lookback_window: int = Field(default=14, gt=0)
    units: int = Field(default=32, gt=0)
    epochs: int = Field(default=50, gt=0)
    batch_size: int = Field(default=32, gt=0)
    learning_rate: float = Field(default=0.001, gt=0.0, le=1.0)
    early_stopping_patience: Optional[int] = Field(default=5, ge=0)


class TimeRangeDTO(BaseModel):
    start: datetime
    end: datetime


class ModelArtifactResponseDTO(BaseModel):
    """DTO for model artifact metadata (parameters are never returned)."""

    model_id: str
    entity_scope: str
    version: int
    model_type: ModelType
    status: ArtifactStatus
    training_window: TimeRangeDTO
    hyperparameters: HyperparametersDTO
    metrics: Dict[str, Any] = Field(default_factory=dict)
    member_entities: List[str] = Field(default_factory=list)
    fallback_from: Optional[str] = None
    created_at: datetime
    promoted_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None


class PromoteRequestDTO(BaseModel):
    """DTO for a promotion request.

    When ``expected_active_id`` is omitted the current active model is read
    and used for the compare-and-swap.
    """

    expected_active_id: Optional[str] = None
    expect_no_active: bool = Field(
        default=False,
        description="Only promote if the scope has no active model",
    )
