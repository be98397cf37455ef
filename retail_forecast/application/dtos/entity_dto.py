"""
Application DTOs - Entities

Data Transfer Objects for the entity catalogue.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from retail_forecast.domain.entities.entity import DEFAULT_FREQUENCY_SECONDS


class EntityCreateDTO(BaseModel):
    """DTO for registering a forecastable entity."""

    entity_id: str = Field(..., min_length=1, description="Region x category id")
    hierarchy: List[str] = Field(
        default_factory=list,
        description="Cluster ids from the root down to the direct parent",
    )
    frequency_seconds: int = Field(default=DEFAULT_FREQUENCY_SECONDS, gt=0)


class HierarchyUpdateDTO(BaseModel):
    """DTO for an administrative hierarchy change."""

    hierarchy: List[str]


class EntityResponseDTO(BaseModel):
    """DTO for entity responses."""

    entity_id: str
    hierarchy: List[str]
    active: bool
    frequency_seconds: int
    created_at: datetime
    updated_at: datetime
