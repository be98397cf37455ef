"""
Feature Store Interface

Durable, append-only storage of engineered time-series features keyed by
(entity, timestamp, feature_name), plus the entity catalogue the hierarchy
fallback relies on.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence

from retail_forecast.domain.entities.entity import Entity
from retail_forecast.domain.entities.feature import FeatureRecord, FeatureRow, TimeRange


class IFeatureStore(ABC):
    """Interface for Feature Store implementations."""

    @abstractmethod
    async def register_entity(self, entity: Entity) -> Entity:
        """Create or replace an entity definition."""
        pass

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Entity:
        """
        Get an entity definition.

        Raises:
            NotFoundError: If the entity is unknown
        """
        pass

    @abstractmethod
    async def list_entities(self, cluster_id: Optional[str] = None) -> List[Entity]:
        """
        List active entities, optionally only members of a cluster.

        Args:
            cluster_id: Keep only entities whose hierarchy contains it
        """
        pass

    @abstractmethod
    async def put(
        self,
        entity_id: str,
        timestamp: datetime,
        features: Dict[str, float],
        ingestion_time: Optional[datetime] = None,
    ) -> FeatureRecord:
        """
        Append a feature record.

        Unknown entities are registered on first write with an empty
        hierarchy. A retry carrying the same ingestion_time is a no-op.

        Raises:
            TransientStorageError: If the write may succeed when retried
        """
        pass

    @abstractmethod
    async def get(
        self,
        entity_id: str,
        time_range: TimeRange,
        features: Optional[Sequence[str]] = None,
    ) -> Iterator[FeatureRow]:
        """
        Read features over ``time_range`` on the entity's grid.

        Args:
            entity_id: Entity to read
            time_range: Half-open window
            features: Feature names to report; all known names when None

        Returns:
            Lazy, time-ordered rows with latest-ingestion-wins values and
            MISSING for gaps; empty when the window holds no data

        Raises:
            NotFoundError: If the entity is unknown
        """
        pass

    async def put_record(self, record: FeatureRecord) -> FeatureRecord:
        return await self.put(
            record.entity_id,
            record.timestamp,
            record.features,
            ingestion_time=record.ingestion_time,
        )
