"""
MongoDB Feature Store - Infrastructure Layer

Feature values are stored one document per (entity, timestamp, feature,
ingestion_time) in ``feature_records``; a unique index on that tuple makes
retried writes idempotent. Corrections are new documents with a later
ingestion_time, and reads resolve them with latest-ingestion-wins.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

import structlog
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from retail_forecast.domain.entities.entity import Entity
from retail_forecast.domain.entities.errors import NotFoundError
from retail_forecast.domain.entities.feature import (
    FeatureRecord,
    FeatureRow,
    FeatureValueRecord,
    TimeRange,
    ensure_utc,
)
from retail_forecast.domain.repositories.feature_store import IFeatureStore
from retail_forecast.domain.services.feature_grid import latest_wins_rows
from retail_forecast.infrastructure.database.mongo_database import (
    MongoDatabase,
    transient_errors,
)

logger = structlog.get_logger(__name__)


class MongoFeatureStore(IFeatureStore):
    """MongoDB implementation of the feature store."""

    ENTITIES = "entities"
    RECORDS = "feature_records"

    def __init__(self, database: MongoDatabase):
        """
        Initialize the feature store.

        Args:
            database: MongoDB database client
        """
        self.db = database

    def _entity_to_document(self, entity: Entity) -> Dict[str, Any]:
        return {
            "entity_id": entity.entity_id,
            "hierarchy": list(entity.hierarchy),
            "active": entity.active,
            "frequency_seconds": entity.frequency_seconds,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
        }

    def _entity_to_entity(self, document: Dict[str, Any]) -> Entity:
        return Entity(
            entity_id=document["entity_id"],
            hierarchy=list(document.get("hierarchy") or []),
            active=document.get("active", True),
            frequency_seconds=int(document.get("frequency_seconds", 86400)),
            created_at=document["created_at"],
            updated_at=document.get("updated_at", document["created_at"]),
        )

    async def register_entity(self, entity: Entity) -> Entity:
        existing = await self.db.find_one(self.ENTITIES, {"entity_id": entity.entity_id})
        if existing is not None:
            entity.created_at = existing["created_at"]
        await self.db.replace_one(
            self.ENTITIES,
            {"entity_id": entity.entity_id},
            self._entity_to_document(entity),
            upsert=True,
        )
        logger.info(
            "feature_store.entity.registered",
            entity_id=entity.entity_id,
            hierarchy=entity.hierarchy,
        )
        return entity

    async def get_entity(self, entity_id: str) -> Entity:
        document = await self.db.find_one(self.ENTITIES, {"entity_id": entity_id})
        if document is None:
            raise NotFoundError("entity", entity_id)
        return self._entity_to_entity(document)

    async def list_entities(self, cluster_id: Optional[str] = None) -> List[Entity]:
        query: Dict[str, Any] = {"active": True}
        if cluster_id is not None:
            query["hierarchy"] = cluster_id
        documents = await self.db.find_many(
            self.ENTITIES, query, sort=[("entity_id", ASCENDING)]
        )
        return [self._entity_to_entity(document) for document in documents]

    async def put(
        self,
        entity_id: str,
        timestamp: datetime,
        features: Dict[str, float],
        ingestion_time: Optional[datetime] = None,
    ) -> FeatureRecord:
        record = FeatureRecord(
            entity_id=entity_id,
            timestamp=timestamp,
            features=dict(features),
            ingestion_time=ingestion_time or datetime.now(timezone.utc),
        )
        await self._ensure_entity(entity_id)
        for value in record.flatten():
            key = {
                "entity_id": value.entity_id,
                "timestamp": value.timestamp,
                "feature": value.feature_name,
                "ingestion_time": value.ingestion_time,
            }
            update = {"$set": {"value": value.value}}
            try:
                await self.db.update_one(self.RECORDS, key, update, upsert=True)
            except DuplicateKeyError:
                # Concurrent upsert of the same key: the document now exists.
                await self.db.update_one(self.RECORDS, key, update)
        return record

    async def get(
        self,
        entity_id: str,
        time_range: TimeRange,
        features: Optional[Sequence[str]] = None,
    ) -> Iterator[FeatureRow]:
        entity = await self.get_entity(entity_id)
        if features is None:
            names = sorted(
                await self.db.distinct(self.RECORDS, "feature", {"entity_id": entity_id})
            )
        else:
            names = list(features)
        query = {
            "entity_id": entity_id,
            "timestamp": {"$gte": time_range.start, "$lt": time_range.end},
            "feature": {"$in": names},
        }
        return latest_wins_rows(
            self._stream(query), time_range, entity.frequency, names
        )

    def _stream(self, query: Dict[str, Any]) -> Iterator[FeatureValueRecord]:
        with transient_errors("feature_records.stream"):
            cursor = self.db.iter_documents(
                self.RECORDS,
                query,
                sort=[("timestamp", ASCENDING), ("ingestion_time", ASCENDING)],
            )
            for document in cursor:
                yield FeatureValueRecord(
                    entity_id=document["entity_id"],
                    timestamp=ensure_utc(document["timestamp"]),
                    feature_name=document["feature"],
                    value=float(document["value"]),
                    ingestion_time=ensure_utc(document["ingestion_time"]),
                )

    async def _ensure_entity(self, entity_id: str) -> None:
        now = datetime.now(timezone.utc)
        defaults = self._entity_to_document(
            Entity(entity_id=entity_id, created_at=now, updated_at=now)
        )
        defaults.pop("entity_id")
        try:
            _, _, created = await self.db.update_one(
                self.ENTITIES,
                {"entity_id": entity_id},
                {"$setOnInsert": defaults},
                upsert=True,
            )
        except DuplicateKeyError:
            # Registered concurrently by another writer.
            return
        if created:
            logger.info("feature_store.entity.auto_registered", entity_id=entity_id)
