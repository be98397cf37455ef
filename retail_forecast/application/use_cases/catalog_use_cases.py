"""
Catalog Use Cases - Application Layer

Use cases for the entity catalogue and the model registry that the API
exposes directly: registering entities, amending their hierarchy, reading
artifacts and promoting (or rolling back to) a model by hand.
"""

from typing import List

import structlog

from retail_forecast.application.dtos.converters import to_artifact_dto, to_entity_dto
from retail_forecast.application.dtos.entity_dto import (
    EntityCreateDTO,
    EntityResponseDTO,
    HierarchyUpdateDTO,
)
from retail_forecast.application.dtos.model_dto import (
    ModelArtifactResponseDTO,
    PromoteRequestDTO,
)
from retail_forecast.application.use_cases.drift_monitor import DriftMonitor
from retail_forecast.domain.entities.entity import Entity, EntityScope
from retail_forecast.domain.repositories.feature_store import IFeatureStore
from retail_forecast.domain.repositories.model_registry import (
    READ_CURRENT,
    IModelRegistry,
)

logger = structlog.get_logger(__name__)


class RegisterEntityUseCase:
    """Use case for registering (or redefining) an entity."""

    def __init__(self, feature_store: IFeatureStore):
        self.feature_store = feature_store

    async def execute(self, dto: EntityCreateDTO) -> EntityResponseDTO:
        entity = Entity(
            entity_id=dto.entity_id,
            frequency_seconds=dto.frequency_seconds,
        )
        entity.amend_hierarchy(dto.hierarchy)
        entity = await self.feature_store.register_entity(entity)
        return to_entity_dto(entity)


class AmendHierarchyUseCase:
    """Use case for an administrative change of an entity's clusters.

    Models already trained for the old clusters stay registered; the new
    path only affects future fallback and serving resolution.
    """

    def __init__(self, feature_store: IFeatureStore):
        self.feature_store = feature_store

    async def execute(
        self, entity_id: str, dto: HierarchyUpdateDTO
    ) -> EntityResponseDTO:
        """
        Raises:
            NotFoundError: If the entity is unknown
            ValidationError: If the entity would be its own cluster
        """
        entity = await self.feature_store.get_entity(entity_id)
        previous = list(entity.hierarchy)
        entity.amend_hierarchy(dto.hierarchy)
        entity = await self.feature_store.register_entity(entity)
        logger.info(
            "catalog.hierarchy.amended",
            entity_id=entity_id,
            previous=previous,
            hierarchy=entity.hierarchy,
        )
        return to_entity_dto(entity)


class GetEntityUseCase:
    def __init__(self, feature_store: IFeatureStore):
        self.feature_store = feature_store

    async def execute(self, entity_id: str) -> EntityResponseDTO:
        return to_entity_dto(await self.feature_store.get_entity(entity_id))


class GetModelUseCase:
    """Use case for reading one artifact's metadata."""

    def __init__(self, registry: IModelRegistry):
        self.registry = registry

    async def execute(self, model_id: str) -> ModelArtifactResponseDTO:
        return to_artifact_dto(await self.registry.get(model_id))


class ListScopeModelsUseCase:
    """Use case for listing a scope's artifacts, newest version first."""

    def __init__(self, registry: IModelRegistry):
        self.registry = registry

    async def execute(self, scope: str) -> List[ModelArtifactResponseDTO]:
        artifacts = await self.registry.list_by_scope(EntityScope.parse(scope))
        return [to_artifact_dto(artifact) for artifact in artifacts]


class GetActiveModelUseCase:
    def __init__(self, registry: IModelRegistry):
        self.registry = registry

    async def execute(self, scope: str) -> ModelArtifactResponseDTO:
        """
        Raises:
            NoActiveModelError: If the scope has no active model
        """
        return to_artifact_dto(await self.registry.get_active(EntityScope.parse(scope)))


class PromoteModelUseCase:
    """Use case for a manual promotion or rollback.

    The drift monitor is told about the new active model so the scope's
    window restarts on it.
    """

    def __init__(self, registry: IModelRegistry, drift_monitor: DriftMonitor):
        self.registry = registry
        self.drift_monitor = drift_monitor

    async def execute(
        self, model_id: str, dto: PromoteRequestDTO
    ) -> ModelArtifactResponseDTO:
        """
        Raises:
            NotFoundError: If the model is unknown
            ModelStateError: If the model cannot be promoted
            ConcurrentPromotionConflict: If the active model changed meanwhile
        """
        if dto.expect_no_active:
            expected: object = None
        elif dto.expected_active_id is not None:
            expected = dto.expected_active_id
        else:
            expected = READ_CURRENT

        artifact = await self.registry.promote(model_id, expected_active_id=expected)
        await self.drift_monitor.reset_for_model(
            str(artifact.entity_scope), artifact.model_id
        )
        logger.info(
            "catalog.model.promoted",
            model_id=artifact.model_id,
            scope=str(artifact.entity_scope),
            version=artifact.version,
        )
        return to_artifact_dto(artifact)
