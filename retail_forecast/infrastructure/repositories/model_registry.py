"""
MongoDB Model Registry - Infrastructure Layer

Artifact metadata lives in ``model_artifacts``, parameter bytes in GridFS
and the (scope -> active model_id) mapping in ``active_models``, which has a
unique index on scope. Promotion is a compare-and-swap on that mapping:
``find_one_and_update`` filtered on the expected model_id, or an insert
guarded by the unique index when the scope has no active model yet.
Artifact status fields are bookkeeping; reads derive the effective status
from the mapping.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import (
    ConcurrentPromotionConflict,
    ModelStateError,
    NotFoundError,
    TransientStorageError,
)
from retail_forecast.domain.entities.feature import TimeRange
from retail_forecast.domain.entities.model_artifact import (
    ArtifactStatus,
    ModelArtifact,
    ModelHyperparameters,
    ModelType,
)
from retail_forecast.domain.repositories.artifact_blob_store import (
    IArtifactBlobStore,
)
from retail_forecast.domain.repositories.model_registry import (
    READ_CURRENT,
    IModelRegistry,
)
from retail_forecast.domain.services.artifact_status import effective_status
from retail_forecast.infrastructure.database.mongo_database import MongoDatabase

logger = structlog.get_logger(__name__)

REGISTER_ATTEMPTS = 5


class MongoModelRegistry(IModelRegistry):
    """MongoDB implementation of the model registry."""

    ARTIFACTS = "model_artifacts"
    ACTIVE = "active_models"

    def __init__(self, database: MongoDatabase, blob_store: IArtifactBlobStore):
        """
        Initialize the registry.

        Args:
            database: MongoDB database client
            blob_store: Storage for serialized parameters
        """
        self.db = database
        self.blob_store = blob_store

    def _to_document(self, artifact: ModelArtifact, blob_id: str) -> Dict[str, Any]:
        return {
            "model_id": artifact.model_id,
            "scope": str(artifact.entity_scope),
            "version": artifact.version,
            "model_type": artifact.model_type.value,
            "training_window": {
                "start": artifact.training_window.start,
                "end": artifact.training_window.end,
            },
            "hyperparameters": artifact.hyperparameters.to_dict(),
            "blob_id": blob_id,
            "status": artifact.status.value,
            "metrics": dict(artifact.metrics),
            "member_entities": list(artifact.member_entities),
            "fallback_from": artifact.fallback_from,
            "created_at": artifact.created_at,
            "promoted_at": artifact.promoted_at,
            "retired_at": artifact.retired_at,
        }

    def _to_entity(
        self,
        document: Dict[str, Any],
        active_model_id: Optional[str],
        parameters: bytes = b"",
    ) -> ModelArtifact:
        window = document["training_window"]
        return ModelArtifact(
            entity_scope=EntityScope.parse(document["scope"]),
            model_type=ModelType(document["model_type"]),
            training_window=TimeRange(window["start"], window["end"]),
            hyperparameters=ModelHyperparameters.from_dict(
                document.get("hyperparameters") or {}
            ),
            serialized_parameters=parameters,
            model_id=document["model_id"],
            version=int(document["version"]),
            status=effective_status(
                ArtifactStatus(document["status"]),
                document["model_id"],
                active_model_id,
            ),
            metrics=dict(document.get("metrics") or {}),
            member_entities=list(document.get("member_entities") or []),
            fallback_from=document.get("fallback_from"),
            created_at=document["created_at"],
            promoted_at=document.get("promoted_at"),
            retired_at=document.get("retired_at"),
        )

    async def _active_id(self, scope: str) -> Optional[str]:
        document = await self.db.find_one(self.ACTIVE, {"scope": scope})
        return document["model_id"] if document else None

    async def _document(self, model_id: str) -> Dict[str, Any]:
        document = await self.db.find_one(self.ARTIFACTS, {"model_id": model_id})
        if document is None:
            raise NotFoundError("model", model_id)
        return document

    async def register(self, artifact: ModelArtifact) -> ModelArtifact:
        if artifact.status not in (ArtifactStatus.TRAINING, ArtifactStatus.CANDIDATE):
            raise ModelStateError(
                f"Cannot register an artifact in status {artifact.status.value}",
                {"model_id": artifact.model_id},
            )
        scope = str(artifact.entity_scope)
        blob_id = await self.blob_store.save(
            artifact.model_id,
            artifact.serialized_parameters,
            {"scope": scope, "model_type": artifact.model_type.value},
        )

        for _ in range(REGISTER_ATTEMPTS):
            latest = await self.db.find_one(
                self.ARTIFACTS, {"scope": scope}, sort=[("version", DESCENDING)]
            )
            artifact.version = int(latest["version"]) + 1 if latest else 1
            try:
                await self.db.insert_one(
                    self.ARTIFACTS, self._to_document(artifact, blob_id)
                )
            except DuplicateKeyError:
                # Another writer took this version number.
                continue
            logger.info(
                "model_registry.registered",
                model_id=artifact.model_id,
                scope=scope,
                version=artifact.version,
            )
            return artifact

        raise TransientStorageError(
            f"Could not allocate a version for scope '{scope}'",
            {"scope": scope, "attempts": REGISTER_ATTEMPTS},
        )

    async def get(self, model_id: str) -> ModelArtifact:
        document = await self._document(model_id)
        active_id = await self._active_id(document["scope"])
        parameters = await self.blob_store.load(document["blob_id"])
        return self._to_entity(document, active_id, parameters)

    async def find_active(self, scope: EntityScope) -> Optional[ModelArtifact]:
        active_id = await self._active_id(str(scope))
        if active_id is None:
            return None
        return await self.get(active_id)

    async def promote(
        self, model_id: str, expected_active_id: object = READ_CURRENT
    ) -> ModelArtifact:
        document = await self._document(model_id)
        if document["status"] == ArtifactStatus.TRAINING.value:
            raise ModelStateError(
                f"Model '{model_id}' is still training", {"model_id": model_id}
            )
        scope = document["scope"]
        current = await self._active_id(scope)
        expected = current if expected_active_id is READ_CURRENT else expected_active_id
        if expected == model_id and current == model_id:
            return await self.get(model_id)

        now = datetime.now(timezone.utc)
        if expected is None:
            try:
                await self.db.insert_one(
                    self.ACTIVE, {"scope": scope, "model_id": model_id, "updated_at": now}
                )
            except DuplicateKeyError:
                raise ConcurrentPromotionConflict(
                    scope, None, await self._active_id(scope)
                ) from None
        else:
            swapped = await self.db.find_one_and_update(
                self.ACTIVE,
                {"scope": scope, "model_id": expected},
                {"$set": {"model_id": model_id, "updated_at": now}},
            )
            if swapped is None:
                raise ConcurrentPromotionConflict(
                    scope, expected, await self._active_id(scope)
                )

        await self.db.update_one(
            self.ARTIFACTS,
            {"model_id": model_id},
            {
                "$set": {
                    "status": ArtifactStatus.ACTIVE.value,
                    "promoted_at": now,
                    "retired_at": None,
                }
            },
        )
        if expected is not None:
            await self.db.update_one(
                self.ARTIFACTS,
                {"model_id": expected},
                {"$set": {"status": ArtifactStatus.RETIRED.value, "retired_at": now}},
            )
        logger.info(
            "model_registry.promoted",
            model_id=model_id,
            scope=scope,
            previous_model_id=expected,
        )
        return await self.get(model_id)

    async def retire(self, model_id: str) -> ModelArtifact:
        document = await self._document(model_id)
        if await self._active_id(document["scope"]) == model_id:
            raise ModelStateError(
                "The active model cannot be retired directly; promote another one",
                {"model_id": model_id, "scope": document["scope"]},
            )
        now = datetime.now(timezone.utc)
        await self.db.update_one(
            self.ARTIFACTS,
            {"model_id": model_id},
            {"$set": {"status": ArtifactStatus.RETIRED.value, "retired_at": now}},
        )
        logger.info("model_registry.retired", model_id=model_id, scope=document["scope"])
        return await self.get(model_id)

    async def list_by_scope(self, scope: EntityScope) -> List[ModelArtifact]:
        key = str(scope)
        active_id = await self._active_id(key)
        documents = await self.db.find_many(
            self.ARTIFACTS, {"scope": key}, sort=[("version", DESCENDING)]
        )
        return [self._to_entity(document, active_id) for document in documents]

    async def list_scopes(self) -> List[EntityScope]:
        documents = await self.db.find_many(self.ACTIVE, {})
        return sorted(
            (EntityScope.parse(document["scope"]) for document in documents), key=str
        )
