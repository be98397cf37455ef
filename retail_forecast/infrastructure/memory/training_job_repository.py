import copy
from typing import Dict, List, Optional
from uuid import UUID

from retail_forecast.domain.entities.training_job import TrainingJob
from retail_forecast.domain.repositories.training_job_repository import (
    ITrainingJobRepository,
)


class InMemoryTrainingJobRepository(ITrainingJobRepository):
    def __init__(self):
        # In-memory storage
        self._storage: Dict[UUID, TrainingJob] = {}

    async def create(self, training_job: TrainingJob) -> TrainingJob:
        self._storage[training_job.id] = copy.deepcopy(training_job)
        return training_job

    async def update(self, training_job: TrainingJob) -> TrainingJob:
        training_job.update_timestamp()
        self._storage[training_job.id] = copy.deepcopy(training_job)
        return training_job

    async def get_by_id(self, training_job_id: UUID) -> Optional[TrainingJob]:
        job = self._storage.get(training_job_id)
        return copy.deepcopy(job) if job else None

    async def list_by_scope(
        self, entity_scope: str, limit: int = 20
    ) -> List[TrainingJob]:
        jobs = [j for j in self._storage.values() if j.entity_scope == entity_scope]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [copy.deepcopy(j) for j in jobs[:limit]]

    async def list_scopes(self) -> List[str]:
        return sorted({j.entity_scope for j in self._storage.values()})

    def clear(self):
        """Clear all training jobs (only for testing)."""
        self._storage.clear()
