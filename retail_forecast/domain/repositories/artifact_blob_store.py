"""
Artifact Blob Store Interface

Binary storage for serialized model parameters, decoupled from the metadata
documents kept by the registry.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class IArtifactBlobStore(ABC):
    """Interface for artifact blob storage implementations."""

    @abstractmethod
    async def save(
        self,
        model_id: str,
        content: bytes,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Save a blob.

        Returns:
            Identifier of the stored blob
        """
        pass

    @abstractmethod
    async def load(self, blob_id: str) -> bytes:
        """
        Raises:
            NotFoundError: If the blob does not exist
        """
        pass

    @abstractmethod
    async def delete(self, blob_id: str) -> bool:
        """Delete a blob; False when it did not exist."""
        pass
