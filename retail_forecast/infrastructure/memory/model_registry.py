"""In-memory model registry with a lock-protected compare-and-swap."""

import copy
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog

from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import (
    ConcurrentPromotionConflict,
    ModelStateError,
    NotFoundError,
)
from retail_forecast.domain.entities.model_artifact import ArtifactStatus, ModelArtifact
from retail_forecast.domain.repositories.model_registry import (
    READ_CURRENT,
    IModelRegistry,
)
from retail_forecast.domain.services.artifact_status import effective_status

logger = structlog.get_logger(__name__)


class InMemoryModelRegistry(IModelRegistry):
    def __init__(self):
        # In-memory storage; every mutation happens under one lock
        self._artifacts: Dict[str, ModelArtifact] = {}
        self._active: Dict[str, str] = {}
        self._versions: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def _snapshot(self, artifact: ModelArtifact) -> ModelArtifact:
        result = copy.deepcopy(artifact)
        result.status = effective_status(
            artifact.status,
            artifact.model_id,
            self._active.get(str(artifact.entity_scope)),
        )
        return result

    def _stored(self, model_id: str) -> ModelArtifact:
        artifact = self._artifacts.get(model_id)
        if artifact is None:
            raise NotFoundError("model", model_id)
        return artifact

    async def register(self, artifact: ModelArtifact) -> ModelArtifact:
        if artifact.status not in (ArtifactStatus.TRAINING, ArtifactStatus.CANDIDATE):
            raise ModelStateError(
                f"Cannot register an artifact in status {artifact.status.value}",
                {"model_id": artifact.model_id},
            )
        with self._lock:
            scope = str(artifact.entity_scope)
            self._versions[scope] += 1
            artifact.version = self._versions[scope]
            self._artifacts[artifact.model_id] = copy.deepcopy(artifact)
        logger.info(
            "model_registry.registered",
            model_id=artifact.model_id,
            scope=scope,
            version=artifact.version,
        )
        return artifact

    async def get(self, model_id: str) -> ModelArtifact:
        with self._lock:
            return self._snapshot(self._stored(model_id))

    async def find_active(self, scope: EntityScope) -> Optional[ModelArtifact]:
        with self._lock:
            model_id = self._active.get(str(scope))
            if model_id is None:
                return None
            return self._snapshot(self._artifacts[model_id])

    async def promote(
        self, model_id: str, expected_active_id: object = READ_CURRENT
    ) -> ModelArtifact:
        with self._lock:
            artifact = self._stored(model_id)
            if artifact.status is ArtifactStatus.TRAINING:
                raise ModelStateError(
                    f"Model '{model_id}' is still training", {"model_id": model_id}
                )
            scope = str(artifact.entity_scope)
            current = self._active.get(scope)
            expected = (
                current if expected_active_id is READ_CURRENT else expected_active_id
            )
            if current != expected:
                raise ConcurrentPromotionConflict(scope, expected, current)
            if current != model_id:
                now = datetime.now(timezone.utc)
                self._active[scope] = model_id
                artifact.mark_active(now)
                if current is not None:
                    self._artifacts[current].mark_retired(now)
                logger.info(
                    "model_registry.promoted",
                    model_id=model_id,
                    scope=scope,
                    previous_model_id=current,
                )
            return self._snapshot(artifact)

    async def retire(self, model_id: str) -> ModelArtifact:
        with self._lock:
            artifact = self._stored(model_id)
            scope = str(artifact.entity_scope)
            if self._active.get(scope) == model_id:
                raise ModelStateError(
                    "The active model cannot be retired directly; promote another one",
                    {"model_id": model_id, "scope": scope},
                )
            artifact.mark_retired()
            return self._snapshot(artifact)

    async def list_by_scope(self, scope: EntityScope) -> List[ModelArtifact]:
        key = str(scope)
        with self._lock:
            artifacts = [
                self._snapshot(a)
                for a in self._artifacts.values()
                if str(a.entity_scope) == key
            ]
        for artifact in artifacts:
            artifact.serialized_parameters = b""
        return sorted(artifacts, key=lambda a: a.version, reverse=True)

    async def list_scopes(self) -> List[EntityScope]:
        with self._lock:
            return sorted((EntityScope.parse(s) for s in self._active), key=str)

    def clear(self):
        """Clear all models (only for testing)."""
        with self._lock:
            self._artifacts.clear()
            self._active.clear()
            self._versions.clear()
