"""
Domain Entities - Forecastable entities and scopes

An entity is a region x product-category unit. Its hierarchy path is the
list of cluster ids from the root down to its direct parent; training falls
back along that path when the leaf has too little history.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List

from retail_forecast.domain.entities.errors import ValidationError

DEFAULT_FREQUENCY_SECONDS = 86400


class ScopeKind(str, Enum):
    """Granularity a model is trained for."""

    ENTITY = "entity"
    CLUSTER = "cluster"


@dataclass(frozen=True)
class EntityScope:
    """A single entity or a cluster of entities."""

    kind: ScopeKind
    key: str

    @classmethod
    def entity(cls, entity_id: str) -> "EntityScope":
        return cls(ScopeKind.ENTITY, entity_id)

    @classmethod
    def cluster(cls, cluster_id: str) -> "EntityScope":
        return cls(ScopeKind.CLUSTER, cluster_id)

    @classmethod
    def parse(cls, value: str) -> "EntityScope":
        """Parse the ``kind:key`` form; a bare key is an entity scope."""
        kind, sep, key = value.partition(":")
        if not sep:
            return cls.entity(value)
        try:
            return cls(ScopeKind(kind), key)
        except ValueError as exc:
            raise ValidationError(f"Invalid scope '{value}'") from exc

    @property
    def is_cluster(self) -> bool:
        return self.kind is ScopeKind.CLUSTER

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


@dataclass
class Entity:
    """A forecastable unit (region x product category)."""

    entity_id: str
    hierarchy: List[str] = field(default_factory=list)
    active: bool = True
    frequency_seconds: int = DEFAULT_FREQUENCY_SECONDS
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.entity_id:
            raise ValidationError("entity_id must not be empty")
        if self.frequency_seconds <= 0:
            raise ValidationError("frequency_seconds must be positive")

    @property
    def frequency(self) -> timedelta:
        return timedelta(seconds=self.frequency_seconds)

    @property
    def scope(self) -> EntityScope:
        return EntityScope.entity(self.entity_id)

    def scope_chain(self) -> List[EntityScope]:
        """Leaf scope first, then each ancestor cluster up to the root."""
        return [self.scope] + [
            EntityScope.cluster(cluster_id) for cluster_id in reversed(self.hierarchy)
        ]

    def ancestors_of(self, cluster_id: str) -> List[EntityScope]:
        """Clusters above ``cluster_id`` in this entity's path, nearest first."""
        if cluster_id not in self.hierarchy:
            return []
        index = self.hierarchy.index(cluster_id)
        return [EntityScope.cluster(c) for c in reversed(self.hierarchy[:index])]

    def belongs_to(self, cluster_id: str) -> bool:
        return cluster_id in self.hierarchy

    def amend_hierarchy(self, hierarchy: List[str]) -> None:
        """Administrative change of the clustering path; identity is kept."""
        if self.entity_id in hierarchy:
            raise ValidationError("An entity cannot be its own cluster")
        self.hierarchy = list(hierarchy)
        self.updated_at = datetime.now(timezone.utc)
