"""
Infrastructure Repository - Training Job MongoDB Implementation

This module implements the training job repository using MongoDB.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from retail_forecast.domain.entities.feature import ensure_utc
from retail_forecast.domain.entities.training_job import (
    TrainingJob,
    TrainingReason,
    TrainingStatus,
)
from retail_forecast.domain.repositories.training_job_repository import (
    ITrainingJobRepository,
)
from retail_forecast.infrastructure.database.mongo_database import MongoDatabase

logger = structlog.get_logger(__name__)


def _optional_utc(value):
    return ensure_utc(value) if value is not None else None


class TrainingJobRepository(ITrainingJobRepository):
    """MongoDB implementation of training job repository."""

    def __init__(self, database: MongoDatabase):
        """Initialize repository with database connection."""
        self.database = database
        self.collection_name = "training_jobs"

    async def create(self, training_job: TrainingJob) -> TrainingJob:
        """Create a new training job."""
        try:
            await self.database.insert_one(
                self.collection_name, self._to_document(training_job)
            )
        except PyMongoError as e:
            logger.error(
                "training_job.create_failed",
                training_job_id=str(training_job.id),
                error=str(e),
            )
            raise
        logger.info(
            "training_job.created",
            training_job_id=str(training_job.id),
            scope=training_job.entity_scope,
            reason=training_job.reason.value,
        )
        return training_job

    async def update(self, training_job: TrainingJob) -> TrainingJob:
        """Update a training job."""
        training_job.update_timestamp()
        try:
            await self.database.replace_one(
                self.collection_name,
                {"id": str(training_job.id)},
                self._to_document(training_job),
            )
        except PyMongoError as e:
            logger.error(
                "training_job.update_failed",
                training_job_id=str(training_job.id),
                error=str(e),
            )
            raise
        return training_job

    async def get_by_id(self, training_job_id: UUID) -> Optional[TrainingJob]:
        """Get training job by ID."""
        document = await self.database.find_one(
            self.collection_name, {"id": str(training_job_id)}
        )
        return self._from_document(document) if document else None

    async def list_by_scope(
        self, entity_scope: str, limit: int = 20
    ) -> List[TrainingJob]:
        documents = await self.database.find_many(
            self.collection_name,
            {"entity_scope": entity_scope},
            sort=[("created_at", DESCENDING)],
            limit=limit,
        )
        return [self._from_document(document) for document in documents]

    async def list_scopes(self) -> List[str]:
        return sorted(
            await self.database.distinct(self.collection_name, "entity_scope")
        )

    def _to_document(self, training_job: TrainingJob) -> Dict[str, Any]:
        """Convert training job entity to MongoDB document."""
        return {
            "id": str(training_job.id),
            "entity_scope": training_job.entity_scope,
            "reason": training_job.reason.value,
            "status": training_job.status.value,
            "candidate_model_id": training_job.candidate_model_id,
            "candidate_scope": training_job.candidate_scope,
            "candidate_error": training_job.candidate_error,
            "incumbent_model_id": training_job.incumbent_model_id,
            "incumbent_error": training_job.incumbent_error,
            "promoted": training_job.promoted,
            "error": training_job.error,
            "error_details": training_job.error_details,
            "start_time": training_job.start_time,
            "end_time": training_job.end_time,
            "created_at": training_job.created_at,
            "updated_at": training_job.updated_at,
        }

    def _from_document(self, document: Dict[str, Any]) -> TrainingJob:
        """Convert MongoDB document to training job entity."""
        return TrainingJob(
            id=UUID(document["id"]),
            entity_scope=document["entity_scope"],
            reason=TrainingReason(document.get("reason", TrainingReason.SCHEDULE.value)),
            status=TrainingStatus(document["status"]),
            candidate_model_id=document.get("candidate_model_id"),
            candidate_scope=document.get("candidate_scope"),
            candidate_error=document.get("candidate_error"),
            incumbent_model_id=document.get("incumbent_model_id"),
            incumbent_error=document.get("incumbent_error"),
            promoted=bool(document.get("promoted", False)),
            error=document.get("error"),
            error_details=document.get("error_details"),
            start_time=_optional_utc(document.get("start_time")),
            end_time=_optional_utc(document.get("end_time")),
            created_at=ensure_utc(document["created_at"]),
            updated_at=ensure_utc(document["updated_at"]),
        )
