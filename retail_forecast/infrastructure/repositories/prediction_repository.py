"""
MongoDB Prediction and Observation Repositories - Infrastructure Layer

Predictions are append-only. Observations are keyed by (entity_id,
timestamp); re-sending the same value is a no-op so ingestion retries do not
feed the drift monitor twice.
"""

from typing import Any, Dict, List, Optional

import structlog
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from retail_forecast.domain.entities.feature import TimeRange, ensure_utc
from retail_forecast.domain.entities.prediction import (
    ActualObservation,
    ConfidenceInterval,
    Prediction,
)
from retail_forecast.domain.repositories.prediction_repository import (
    IObservationRepository,
    IPredictionRepository,
)
from retail_forecast.infrastructure.database.mongo_database import MongoDatabase

logger = structlog.get_logger(__name__)


def _range_query(field: str, time_range: Optional[TimeRange]) -> Dict[str, Any]:
    if time_range is None:
        return {}
    return {field: {"$gte": time_range.start, "$lt": time_range.end}}


class MongoPredictionRepository(IPredictionRepository):
    """MongoDB implementation of the prediction repository."""

    COLLECTION_NAME = "predictions"

    def __init__(self, database: MongoDatabase):
        self.db = database

    def _to_document(self, prediction: Prediction) -> Dict[str, Any]:
        return {
            "prediction_id": prediction.prediction_id,
            "model_id": prediction.model_id,
            "entity_scope": prediction.entity_scope,
            "entity_id": prediction.entity_id,
            "target_timestamp": prediction.target_timestamp,
            "predicted_value": prediction.predicted_value,
            "confidence_interval": {
                "lower": prediction.confidence_interval.lower,
                "upper": prediction.confidence_interval.upper,
                "coverage": prediction.confidence_interval.coverage,
            },
            "generated_at": prediction.generated_at,
        }

    def _to_entity(self, document: Dict[str, Any]) -> Prediction:
        interval = document["confidence_interval"]
        return Prediction(
            prediction_id=document["prediction_id"],
            model_id=document["model_id"],
            entity_scope=document["entity_scope"],
            entity_id=document["entity_id"],
            target_timestamp=ensure_utc(document["target_timestamp"]),
            predicted_value=float(document["predicted_value"]),
            confidence_interval=ConfidenceInterval(
                lower=float(interval["lower"]),
                upper=float(interval["upper"]),
                coverage=float(interval["coverage"]),
            ),
            generated_at=ensure_utc(document["generated_at"]),
        )

    async def save(self, prediction: Prediction) -> Prediction:
        await self.db.insert_one(self.COLLECTION_NAME, self._to_document(prediction))
        return prediction

    async def find_for_target(self, entity_id, target_timestamp) -> List[Prediction]:
        documents = await self.db.find_many(
            self.COLLECTION_NAME,
            {"entity_id": entity_id, "target_timestamp": ensure_utc(target_timestamp)},
            sort=[("generated_at", DESCENDING)],
        )
        return [self._to_entity(document) for document in documents]

    async def list_by_entity(
        self, entity_id: str, time_range: Optional[TimeRange] = None
    ) -> List[Prediction]:
        documents = await self.db.find_many(
            self.COLLECTION_NAME,
            {"entity_id": entity_id, **_range_query("target_timestamp", time_range)},
            sort=[("target_timestamp", ASCENDING), ("generated_at", ASCENDING)],
        )
        return [self._to_entity(document) for document in documents]


class MongoObservationRepository(IObservationRepository):
    """MongoDB implementation of the observation repository."""

    COLLECTION_NAME = "observations"

    def __init__(self, database: MongoDatabase):
        self.db = database

    def _to_entity(self, document: Dict[str, Any]) -> ActualObservation:
        return ActualObservation(
            entity_id=document["entity_id"],
            timestamp=ensure_utc(document["timestamp"]),
            observed_value=float(document["observed_value"]),
        )

    async def upsert(self, observation: ActualObservation) -> bool:
        key = {"entity_id": observation.entity_id, "timestamp": observation.timestamp}
        update = {"$set": {"observed_value": observation.observed_value}}
        try:
            _, modified, upserted = await self.db.update_one(
                self.COLLECTION_NAME, key, update, upsert=True
            )
        except DuplicateKeyError:
            # Concurrent first write of the same key.
            _, modified, upserted = await self.db.update_one(
                self.COLLECTION_NAME, key, update
            )
        return upserted or modified > 0

    async def get(self, entity_id, timestamp) -> Optional[ActualObservation]:
        document = await self.db.find_one(
            self.COLLECTION_NAME,
            {"entity_id": entity_id, "timestamp": ensure_utc(timestamp)},
        )
        return self._to_entity(document) if document else None

    async def list_by_entity(
        self, entity_id: str, time_range: Optional[TimeRange] = None
    ) -> List[ActualObservation]:
        documents = await self.db.find_many(
            self.COLLECTION_NAME,
            {"entity_id": entity_id, **_range_query("timestamp", time_range)},
            sort=[("timestamp", ASCENDING)],
        )
        return [self._to_entity(document) for document in documents]
