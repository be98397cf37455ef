"""In-memory feature store with per-entity write locks."""

import copy
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from retail_forecast.domain.entities.entity import Entity
from retail_forecast.domain.entities.errors import NotFoundError
from retail_forecast.domain.entities.feature import (
    FeatureRecord,
    FeatureRow,
    FeatureValueRecord,
    TimeRange,
)
from retail_forecast.domain.repositories.feature_store import IFeatureStore
from retail_forecast.domain.services.feature_grid import latest_wins_rows

# (timestamp, feature_name, ingestion_time)
_VersionKey = Tuple[datetime, str, datetime]


class _EntitySeries:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.values: Dict[_VersionKey, FeatureValueRecord] = {}
        self.feature_names: Set[str] = set()


class InMemoryFeatureStore(IFeatureStore):
    def __init__(self):
        # In-memory storage
        self._entities: Dict[str, Entity] = {}
        self._series: Dict[str, _EntitySeries] = defaultdict(_EntitySeries)
        self._catalog_lock = threading.Lock()

    def _entity_series(self, entity_id: str) -> _EntitySeries:
        with self._catalog_lock:
            return self._series[entity_id]

    async def register_entity(self, entity: Entity) -> Entity:
        with self._catalog_lock:
            existing = self._entities.get(entity.entity_id)
            if existing is not None:
                entity.created_at = existing.created_at
            self._entities[entity.entity_id] = copy.deepcopy(entity)
        return entity

    async def get_entity(self, entity_id: str) -> Entity:
        with self._catalog_lock:
            entity = self._entities.get(entity_id)
            if entity is None:
                raise NotFoundError("entity", entity_id)
            return copy.deepcopy(entity)

    async def list_entities(self, cluster_id: Optional[str] = None) -> List[Entity]:
        with self._catalog_lock:
            entities = [
                copy.deepcopy(entity)
                for entity in self._entities.values()
                if entity.active
                and (cluster_id is None or entity.belongs_to(cluster_id))
            ]
        return sorted(entities, key=lambda entity: entity.entity_id)

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
        with self._catalog_lock:
            if entity_id not in self._entities:
                self._entities[entity_id] = Entity(entity_id=entity_id)
        series = self._entity_series(entity_id)
        with series.lock:
            for value in record.flatten():
                # Same key and ingestion time: last write wins.
                series.values[
                    (value.timestamp, value.feature_name, value.ingestion_time)
                ] = value
                series.feature_names.add(value.feature_name)
        return record

    async def get(
        self,
        entity_id: str,
        time_range: TimeRange,
        features: Optional[Sequence[str]] = None,
    ) -> Iterator[FeatureRow]:
        entity = await self.get_entity(entity_id)
        series = self._entity_series(entity_id)
        with series.lock:
            names = (
                list(features) if features is not None else sorted(series.feature_names)
            )
            snapshot = sorted(
                (
                    value
                    for value in series.values.values()
                    if time_range.contains(value.timestamp)
                ),
                key=lambda value: (value.timestamp, value.ingestion_time),
            )
        return latest_wins_rows(snapshot, time_range, entity.frequency, names)

    def record_count(self, entity_id: str) -> int:
        series = self._entity_series(entity_id)
        with series.lock:
            return len(series.values)

    def clear(self):
        """Clear all entities and features (only for testing)."""
        with self._catalog_lock:
            self._entities.clear()
            self._series.clear()
