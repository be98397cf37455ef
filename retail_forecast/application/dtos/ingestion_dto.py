"""
Application DTOs - Ingestion

Batches of feature records and observations accepted by the ingestion API.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .drift_dto import DriftSignalDTO


class FeatureRecordDTO(BaseModel):
    """One feature record; resend with the same ingestion_time to retry."""

    entity_id: str = Field(..., min_length=1)
    timestamp: datetime
    features: Dict[str, float] = Field(..., min_length=1)
    ingestion_time: Optional[datetime] = Field(
        default=None,
        description="Defaults to the time the record is accepted",
    )


class FeatureBatchDTO(BaseModel):
    records: List[FeatureRecordDTO] = Field(..., min_length=1)


class FeatureIngestionResponseDTO(BaseModel):
    accepted: int
    values: int


class ObservationDTO(BaseModel):
    """An actual value for (entity_id, timestamp)."""

    entity_id: str = Field(..., min_length=1)
    timestamp: datetime
    observed_value: float


class ObservationBatchDTO(BaseModel):
    observations: List[ObservationDTO] = Field(..., min_length=1)


class ObservationIngestionResponseDTO(BaseModel):
    """Outcome of an observation batch."""

    stored: int
    unchanged: int
    paired: int
    drift_signals: List[DriftSignalDTO] = Field(default_factory=list)
