from typing import Any, Dict, Optional
from uuid import uuid4

from retail_forecast.domain.entities.errors import NotFoundError
from retail_forecast.domain.repositories.artifact_blob_store import (
    IArtifactBlobStore,
)


class InMemoryArtifactBlobStore(IArtifactBlobStore):
    def __init__(self):
        # In-memory storage
        self._blobs: Dict[str, bytes] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    async def save(
        self,
        model_id: str,
        content: bytes,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        blob_id = uuid4().hex
        self._blobs[blob_id] = bytes(content)
        self._metadata[blob_id] = {"model_id": model_id, **(metadata or {})}
        return blob_id

    async def load(self, blob_id: str) -> bytes:
        if blob_id not in self._blobs:
            raise NotFoundError("blob", blob_id)
        return self._blobs[blob_id]

    async def delete(self, blob_id: str) -> bool:
        self._metadata.pop(blob_id, None)
        return self._blobs.pop(blob_id, None) is not None

    def clear(self):
        """Clear all blobs (only for testing)."""
        self._blobs.clear()
        self._metadata.clear()
