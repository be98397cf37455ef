"""
MongoDB Database - Infrastructure Layer

This module provides a MongoDB database client for interacting with MongoDB.
It handles connection, collections, index creation and the CRUD primitives
the repositories build on. Network-level failures surface as
TransientStorageError so callers can decide whether to retry.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pymongo.errors
import structlog
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from retail_forecast.domain.entities.errors import TransientStorageError

logger = structlog.get_logger(__name__)

_TRANSIENT_ERRORS = (
    pymongo.errors.AutoReconnect,
    pymongo.errors.NetworkTimeout,
    pymongo.errors.ServerSelectionTimeoutError,
)

SortSpec = Sequence[Tuple[str, int]]


@contextmanager
def transient_errors(operation: str) -> Iterator[None]:
    """Translate retryable pymongo failures into TransientStorageError."""
    try:
        yield
    except _TRANSIENT_ERRORS as exc:
        raise TransientStorageError(
            f"MongoDB {operation} failed: {exc}", {"operation": operation}
        ) from exc


class MongoDatabase:
    """MongoDB database client."""

    def __init__(
        self,
        mongo_uri: str,
        db_name: str,
        client: Optional[MongoClient] = None,
        server_selection_timeout_ms: int = 5000,
    ):
        """
        Initialize the MongoDB database client.

        Args:
            mongo_uri: MongoDB connection URI
            db_name: Name of the database to use
            client: Pre-built client (tests pass a fake one)
            server_selection_timeout_ms: How long to wait for a reachable server
        """
        self.client = client or MongoClient(
            mongo_uri,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
            tz_aware=True,
        )
        self.db: Database = self.client[db_name]

    def get_collection(self, collection_name: str) -> Collection:
        """
        Get a collection from the database.

        Args:
            collection_name: Name of the collection

        Returns:
            MongoDB collection
        """
        return self.db[collection_name]

    async def find_one(
        self,
        collection_name: str,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Find a single document in a collection.

        Args:
            collection_name: Name of the collection
            query: Query to match documents
            sort: Optional sort applied before picking the first match

        Returns:
            The document if found, None otherwise
        """
        with transient_errors("find_one"):
            if sort:
                return self.db[collection_name].find_one(query, sort=list(sort))
            return self.db[collection_name].find_one(query)

    async def find_many(
        self,
        collection_name: str,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Find multiple documents in a collection.

        Args:
            collection_name: Name of the collection
            query: Query to match documents
            sort: Fields and directions to sort by
            skip: Number of documents to skip
            limit: Maximum number of documents to return (0 means no limit)

        Returns:
            List of documents
        """
        with transient_errors("find_many"):
            return list(self.iter_documents(collection_name, query, sort, skip, limit))

    def iter_documents(
        self,
        collection_name: str,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Iterator[Dict[str, Any]]:
        """Lazily iterate over matching documents (a pymongo cursor)."""
        cursor = self.db[collection_name].find(query)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return cursor

    async def distinct(
        self, collection_name: str, key: str, query: Optional[Dict[str, Any]] = None
    ) -> List[Any]:
        with transient_errors("distinct"):
            return list(self.db[collection_name].distinct(key, query or {}))

    async def insert_one(
        self, collection_name: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Insert a document into a collection.

        Args:
            collection_name: Name of the collection
            document: Document to insert

        Returns:
            The inserted document with any generated fields

        Raises:
            pymongo.errors.DuplicateKeyError: If a unique index rejects it
        """
        with transient_errors("insert_one"):
            result = self.db[collection_name].insert_one(document)
        if not result.acknowledged:
            raise TransientStorageError(
                f"Insert in {collection_name} was not acknowledged"
            )
        return document

    async def update_one(
        self,
        collection_name: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> Tuple[int, int, bool]:
        """
        Apply an update to the first matching document.

        Returns:
            (matched_count, modified_count, upserted)
        """
        with transient_errors("update_one"):
            result = self.db[collection_name].update_one(query, update, upsert=upsert)
        return (
            result.matched_count,
            result.modified_count,
            result.upserted_id is not None,
        )

    async def find_one_and_update(
        self,
        collection_name: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically update one document and return it after the update.

        Returns:
            The updated document, or None when nothing matched
        """
        with transient_errors("find_one_and_update"):
            return self.db[collection_name].find_one_and_update(
                query,
                update,
                upsert=upsert,
                return_document=ReturnDocument.AFTER,
            )

    async def replace_one(
        self,
        collection_name: str,
        query: Dict[str, Any],
        document: Dict[str, Any],
        upsert: bool = False,
    ) -> Dict[str, Any]:
        """
        Replace a document in a collection.

        Args:
            collection_name: Name of the collection
            query: Query to match document to replace
            document: New document
            upsert: Insert the document when nothing matches

        Returns:
            The new document

        Raises:
            LookupError: If the document does not exist and upsert is False
        """
        with transient_errors("replace_one"):
            result = self.db[collection_name].replace_one(query, document, upsert=upsert)
        if result.matched_count == 0 and result.upserted_id is None:
            raise LookupError(f"Document not found in {collection_name}")
        return document

    async def delete_one(self, collection_name: str, query: Dict[str, Any]) -> bool:
        """
        Delete a document from a collection.

        Returns:
            True if a document was deleted
        """
        with transient_errors("delete_one"):
            result = self.db[collection_name].delete_one(query)
        return result.deleted_count > 0

    def close(self) -> None:
        """Close the database connection."""
        self.client.close()

    def _create_index(self, collection_name: str, keys: Any, **kwargs: Any) -> None:
        try:
            self.db[collection_name].create_index(keys, **kwargs)
        except pymongo.errors.OperationFailure as e:
            logger.warning(
                "mongo.index.create_failed",
                collection=collection_name,
                index=kwargs.get("name"),
                error=str(e),
            )

    async def create_indexes(self) -> None:
        """
        Create all necessary indexes for the application.
        This is an async method to be called during application startup.
        """
        self._create_index("entities", "entity_id", name="entity_id_idx", unique=True)
        self._create_index("entities", "hierarchy", name="hierarchy_idx")

        self._create_index(
            "feature_records",
            [
                ("entity_id", ASCENDING),
                ("timestamp", ASCENDING),
                ("feature", ASCENDING),
                ("ingestion_time", ASCENDING),
            ],
            name="feature_version_idx",
            unique=True,
        )

        self._create_index(
            "model_artifacts", "model_id", name="model_id_idx", unique=True
        )
        self._create_index(
            "model_artifacts",
            [("scope", ASCENDING), ("version", DESCENDING)],
            name="scope_version_idx",
            unique=True,
        )
        self._create_index("active_models", "scope", name="scope_idx", unique=True)

        self._create_index(
            "predictions",
            [("entity_id", ASCENDING), ("target_timestamp", ASCENDING)],
            name="entity_target_idx",
        )
        self._create_index(
            "observations",
            [("entity_id", ASCENDING), ("timestamp", ASCENDING)],
            name="entity_timestamp_idx",
            unique=True,
        )

        self._create_index("drift_states", "entity_scope", name="scope_idx", unique=True)
        self._create_index(
            "training_jobs",
            [("entity_scope", ASCENDING), ("created_at", DESCENDING)],
            name="scope_created_idx",
        )
        self._create_index("scope_locks", "scope", name="scope_idx", unique=True)
        logger.info("mongo.indexes.created", database=self.db.name)
