"""
GridFS Artifact Blob Store - Infrastructure Layer

Stores serialized model parameters in MongoDB GridFS. GridFS suits the
large, write-once joblib bundles produced by the forecast engine.
"""

from typing import Any, Dict, Optional

import gridfs
import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from retail_forecast.domain.entities.errors import NotFoundError
from retail_forecast.domain.repositories.artifact_blob_store import (
    IArtifactBlobStore,
)
from retail_forecast.infrastructure.database.mongo_database import transient_errors

logger = structlog.get_logger(__name__)


class GridFSArtifactBlobStore(IArtifactBlobStore):
    """MongoDB GridFS implementation of the artifact blob store."""

    def __init__(self, database: Database, collection: str = "model_blobs"):
        """
        Initialize the GridFS blob store.

        Args:
            database: pymongo database handle
            collection: GridFS bucket prefix
        """
        self.fs = gridfs.GridFS(database, collection=collection)

    async def save(
        self,
        model_id: str,
        content: bytes,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        file_metadata = {
            "model_id": model_id,
            "content_type": "application/octet-stream",
            **(metadata or {}),
        }
        with transient_errors("gridfs.put"):
            file_id = self.fs.put(
                content, filename=f"{model_id}.joblib", metadata=file_metadata
            )
        logger.info(
            "gridfs.blob.saved",
            model_id=model_id,
            file_id=str(file_id),
            size_bytes=len(content),
        )
        return str(file_id)

    async def load(self, blob_id: str) -> bytes:
        try:
            object_id = ObjectId(blob_id)
        except InvalidId as exc:
            raise NotFoundError("blob", blob_id) from exc
        try:
            with transient_errors("gridfs.get"):
                return self.fs.get(object_id).read()
        except gridfs.NoFile as exc:
            raise NotFoundError("blob", blob_id) from exc

    async def delete(self, blob_id: str) -> bool:
        try:
            object_id = ObjectId(blob_id)
        except InvalidId:
            return False
        with transient_errors("gridfs.delete"):
            if not self.fs.exists(object_id):
                return False
            self.fs.delete(object_id)
        logger.info("gridfs.blob.deleted", file_id=blob_id)
        return True
