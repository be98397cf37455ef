"""MongoDB persistence of per-scope drift windows."""

from typing import Any, Dict, List, Optional

from retail_forecast.domain.entities.drift import DriftState, DriftStatus
from retail_forecast.domain.entities.feature import ensure_utc
from retail_forecast.domain.repositories.drift_state_repository import (
    IDriftStateRepository,
)
from retail_forecast.infrastructure.database.mongo_database import MongoDatabase


class MongoDriftStateRepository(IDriftStateRepository):
    """MongoDB implementation of the drift state repository."""

    COLLECTION_NAME = "drift_states"

    def __init__(self, database: MongoDatabase):
        self.db = database

    def _to_document(self, state: DriftState) -> Dict[str, Any]:
        return {
            "entity_scope": state.entity_scope,
            "status": state.status.value,
            "model_id": state.model_id,
            "errors": list(state.errors),
            "timestamps": list(state.timestamps),
            "entity_ids": list(state.entity_ids),
            "error_sum": state.error_sum,
            "consecutive_high": state.consecutive_high,
            "retrained": state.retrained,
            "updated_at": state.updated_at,
        }

    def _to_entity(self, document: Dict[str, Any]) -> DriftState:
        errors = [float(e) for e in document.get("errors", [])]
        entity_ids = document.get("entity_ids") or [None] * len(errors)
        return DriftState(
            entity_scope=document["entity_scope"],
            status=DriftStatus(document.get("status", DriftStatus.OK.value)),
            model_id=document.get("model_id"),
            errors=errors,
            timestamps=[ensure_utc(ts) for ts in document.get("timestamps", [])],
            entity_ids=list(entity_ids),
            error_sum=float(document.get("error_sum", 0.0)),
            consecutive_high=int(document.get("consecutive_high", 0)),
            retrained=bool(document.get("retrained", False)),
            updated_at=ensure_utc(document["updated_at"]),
        )

    async def get(self, entity_scope: str) -> Optional[DriftState]:
        document = await self.db.find_one(
            self.COLLECTION_NAME, {"entity_scope": entity_scope}
        )
        return self._to_entity(document) if document else None

    async def save(self, state: DriftState) -> DriftState:
        await self.db.replace_one(
            self.COLLECTION_NAME,
            {"entity_scope": state.entity_scope},
            self._to_document(state),
            upsert=True,
        )
        return state

    async def list_all(self) -> List[DriftState]:
        documents = await self.db.find_many(
            self.COLLECTION_NAME, {}, sort=[("entity_scope", 1)]
        )
        return [self._to_entity(document) for document in documents]
