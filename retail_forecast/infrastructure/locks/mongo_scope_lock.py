"""
MongoDB lease lock - Infrastructure Layer

One document per scope in ``scope_locks`` (unique on scope). A lease is
taken by inserting the document or by taking over an expired one with a
conditional update, in the same claim style used for scheduled jobs.
"""

from datetime import datetime, timedelta, timezone

import structlog
from pymongo.errors import DuplicateKeyError

from retail_forecast.infrastructure.database.mongo_database import MongoDatabase

logger = structlog.get_logger(__name__)


class MongoScopeLock:
    """Cross-process scope lock backed by MongoDB leases."""

    COLLECTION_NAME = "scope_locks"

    def __init__(self, database: MongoDatabase):
        self.db = database

    async def acquire(self, scope: str, owner: str, ttl_seconds: float) -> bool:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=ttl_seconds)
        claimed = await self.db.find_one_and_update(
            self.COLLECTION_NAME,
            {
                "scope": scope,
                "$or": [{"expires_at": {"$lte": now}}, {"owner": owner}],
            },
            {"$set": {"owner": owner, "expires_at": expires_at, "acquired_at": now}},
        )
        if claimed is not None:
            return True
        try:
            await self.db.insert_one(
                self.COLLECTION_NAME,
                {
                    "scope": scope,
                    "owner": owner,
                    "expires_at": expires_at,
                    "acquired_at": now,
                },
            )
        except DuplicateKeyError:
            logger.debug("scope_lock.busy", scope=scope, owner=owner)
            return False
        return True

    async def release(self, scope: str, owner: str) -> None:
        await self.db.delete_one(self.COLLECTION_NAME, {"scope": scope, "owner": owner})

    async def is_locked(self, scope: str) -> bool:
        document = await self.db.find_one(
            self.COLLECTION_NAME,
            {"scope": scope, "expires_at": {"$gt": datetime.now(timezone.utc)}},
        )
        return document is not None
