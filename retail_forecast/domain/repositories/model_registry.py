"""
Model Registry Interface

Versioned storage of model artifacts and of the (scope -> active model_id)
mapping. Promotion is a compare-and-swap on that mapping and is the only
path to the active status.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import NoActiveModelError
from retail_forecast.domain.entities.model_artifact import ModelArtifact


class _ReadCurrent:
    def __repr__(self) -> str:
        return "READ_CURRENT"


READ_CURRENT = _ReadCurrent()


class IModelRegistry(ABC):
    """Interface for Model Registry implementations."""

    @abstractmethod
    async def register(self, artifact: ModelArtifact) -> ModelArtifact:
        """
        Store a new artifact in status training or candidate.

        The registry assigns the next version number of the artifact's scope.

        Raises:
            ModelStateError: If the artifact is already active or retired
        """
        pass

    @abstractmethod
    async def get(self, model_id: str) -> ModelArtifact:
        """
        Raises:
            NotFoundError: If the model is unknown
        """
        pass

    @abstractmethod
    async def find_active(self, scope: EntityScope) -> Optional[ModelArtifact]:
        """Return the active artifact of a scope, if any."""
        pass

    @abstractmethod
    async def promote(
        self, model_id: str, expected_active_id: object = READ_CURRENT
    ) -> ModelArtifact:
        """
        Atomically make ``model_id`` the active artifact of its scope.

        The previously active artifact becomes retired. Promoting a retired
        artifact is a rollback.

        Args:
            model_id: Artifact to activate
            expected_active_id: Active model_id the caller based its decision
                on (None for "no active model"); read from the mapping when
                omitted

        Raises:
            NotFoundError: If the model is unknown
            ModelStateError: If the artifact is still training
            ConcurrentPromotionConflict: If the mapping changed concurrently
        """
        pass

    @abstractmethod
    async def retire(self, model_id: str) -> ModelArtifact:
        """
        Retire a non-active artifact (rejected or abandoned candidates).

        Raises:
            ModelStateError: If the artifact is the active one of its scope
        """
        pass

    @abstractmethod
    async def list_by_scope(self, scope: EntityScope) -> List[ModelArtifact]:
        """All artifacts of a scope, newest version first.

        Listed artifacts carry metadata only; use ``get`` for parameters.
        """
        pass

    @abstractmethod
    async def list_scopes(self) -> List[EntityScope]:
        """Scopes that currently have an active model."""
        pass

    async def get_active(self, scope: EntityScope) -> ModelArtifact:
        """
        Raises:
            NoActiveModelError: If the scope has no active model
        """
        artifact = await self.find_active(scope)
        if artifact is None:
            raise NoActiveModelError(str(scope))
        return artifact
