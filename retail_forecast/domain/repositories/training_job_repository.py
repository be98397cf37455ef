"""
Training Job Repository Interface

This module defines the interface for training job repositories.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from retail_forecast.domain.entities.training_job import TrainingJob


class ITrainingJobRepository(ABC):
    """Interface for training job repository."""

    @abstractmethod
    async def create(self, training_job: TrainingJob) -> TrainingJob:
        """Create a new training job."""
        pass

    @abstractmethod
    async def update(self, training_job: TrainingJob) -> TrainingJob:
        """Update a training job."""
        pass

    @abstractmethod
    async def get_by_id(self, training_job_id: UUID) -> Optional[TrainingJob]:
        """Get training job by ID."""
        pass

    @abstractmethod
    async def list_by_scope(
        self, entity_scope: str, limit: int = 20
    ) -> List[TrainingJob]:
        """Training jobs of a scope, newest first."""
        pass

    @abstractmethod
    async def list_scopes(self) -> List[str]:
        """Scopes that have at least one job."""
        pass
