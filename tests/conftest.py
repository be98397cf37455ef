from __future__ import annotations

import asyncio
import copy
import math
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from retail_forecast.domain.entities.drift import AlertEvent  # noqa: E402
from retail_forecast.domain.entities.entity import Entity  # noqa: E402
from retail_forecast.domain.entities.feature import FeatureRecord  # noqa: E402
from retail_forecast.domain.entities.model_artifact import (  # noqa: E402
    ModelHyperparameters,
)
from retail_forecast.infrastructure.database import MongoDatabase  # noqa: E402
from retail_forecast.infrastructure.memory import (  # noqa: E402
    InMemoryFeatureStore,
)

_ABSENT = object()


# ---------------------------------------------------------------------------
# Fake pymongo client
# ---------------------------------------------------------------------------


def _compare(op: str, value: Any, argument: Any) -> bool:
    if value is _ABSENT or value is None:
        return False
    if op == "$gte":
        return value >= argument
    if op == "$gt":
        return value > argument
    if op == "$lte":
        return value <= argument
    if op == "$lt":
        return value < argument
    raise NotImplementedError(op)


def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(_matches(document, sub) for sub in condition):
                return False
            continue
        value = document.get(key, _ABSENT)
        if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
            for op, argument in condition.items():
                if op == "$in":
                    values = value if isinstance(value, list) else [value]
                    if not any(v in argument for v in values):
                        return False
                elif op == "$ne":
                    if value == argument:
                        return False
                elif not _compare(op, value, argument):
                    return False
            continue
        if isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value is _ABSENT:
            if condition is not None:
                return False
        elif value != condition:
            return False
    return True


def _sort(documents: List[Dict[str, Any]], spec: Sequence[Tuple[str, int]]):
    ordered = list(documents)
    for key, direction in reversed(list(spec)):
        ordered.sort(
            key=lambda doc: (doc.get(key) is not None, doc.get(key)),
            reverse=direction < 0,
        )
    return ordered


class FakeCursor:
    def __init__(self, documents: Sequence[Dict[str, Any]]):
        self._documents = list(documents)
        self._skip = 0
        self._limit = 0

    def sort(self, spec: Any, direction: int = 1) -> "FakeCursor":
        if isinstance(spec, str):
            spec = [(spec, direction)]
        self._documents = _sort(self._documents, spec)
        return self

    def skip(self, amount: int) -> "FakeCursor":
        self._skip = amount
        return self

    def limit(self, amount: int) -> "FakeCursor":
        self._limit = amount
        return self

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        docs = self._documents[self._skip :]
        if self._limit:
            docs = docs[: self._limit]
        return iter(copy.deepcopy(docs))


class FakeCollection:
    """In-process collection with the subset of pymongo the repositories use."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.unique_indexes: List[Tuple[str, ...]] = []
        self.created_indexes: List[Tuple[Any, Optional[str]]] = []
        self._lock = threading.RLock()

    # Indexes -----------------------------------------------------------
    def create_index(self, keys: Any, name: Optional[str] = None, **kwargs: Any):
        fields = (keys,) if isinstance(keys, str) else tuple(k for k, _ in keys)
        self.created_indexes.append((keys, name))
        if kwargs.get("unique"):
            self.unique_indexes.append(fields)
        return name or "_".join(fields)

    def _check_unique(self, candidate: Dict[str, Any]) -> None:
        for fields in self.unique_indexes:
            key = tuple(candidate.get(f) for f in fields)
            for document in self.documents:
                if document.get("_id") == candidate.get("_id"):
                    continue
                if tuple(document.get(f) for f in fields) == key:
                    raise DuplicateKeyError(f"E11000 duplicate key {fields}={key}")

    # Reads ---------------------------------------------------------------
    def find(self, query: Optional[Dict[str, Any]] = None) -> FakeCursor:
        with self._lock:
            return FakeCursor([d for d in self.documents if _matches(d, query or {})])

    def find_one(self, query: Optional[Dict[str, Any]] = None, sort: Any = None):
        with self._lock:
            matches = [d for d in self.documents if _matches(d, query or {})]
            if sort:
                matches = _sort(matches, sort)
            return copy.deepcopy(matches[0]) if matches else None

    def distinct(self, key: str, query: Optional[Dict[str, Any]] = None) -> List[Any]:
        with self._lock:
            values: List[Any] = []
            for document in self.documents:
                if not _matches(document, query or {}):
                    continue
                value = document.get(key, _ABSENT)
                items = value if isinstance(value, list) else [value]
                for item in items:
                    if item is not _ABSENT and item not in values:
                        values.append(item)
            return values

    # Writes --------------------------------------------------------------
    def insert_one(self, document: Dict[str, Any]):
        with self._lock:
            stored = copy.deepcopy(document)
            stored.setdefault("_id", ObjectId())
            self._check_unique(stored)
            self.documents.append(stored)
            document.setdefault("_id", stored["_id"])
            return SimpleNamespace(acknowledged=True, inserted_id=stored["_id"])

    @staticmethod
    def _apply(document: Dict[str, Any], update: Dict[str, Any], inserting: bool):
        for field, value in update.get("$set", {}).items():
            document[field] = copy.deepcopy(value)
        if inserting:
            for field, value in update.get("$setOnInsert", {}).items():
                document[field] = copy.deepcopy(value)

    def _upsert_document(self, query: Dict[str, Any], update: Dict[str, Any]):
        document = {
            key: copy.deepcopy(value)
            for key, value in query.items()
            if not key.startswith("$") and not isinstance(value, dict)
        }
        document["_id"] = ObjectId()
        self._apply(document, update, inserting=True)
        self._check_unique(document)
        self.documents.append(document)
        return document

    def _first(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return next((d for d in self.documents if _matches(d, query)), None)

    def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert=False):
        with self._lock:
            document = self._first(query)
            if document is None:
                if not upsert:
                    return SimpleNamespace(
                        matched_count=0, modified_count=0, upserted_id=None
                    )
                created = self._upsert_document(query, update)
                return SimpleNamespace(
                    matched_count=0, modified_count=0, upserted_id=created["_id"]
                )
            before = copy.deepcopy(document)
            self._apply(document, update, inserting=False)
            self._check_unique(document)
            return SimpleNamespace(
                matched_count=1,
                modified_count=int(before != document),
                upserted_id=None,
            )

    def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_document: Any = None,
    ):
        with self._lock:
            document = self._first(query)
            if document is None:
                if not upsert:
                    return None
                return copy.deepcopy(self._upsert_document(query, update))
            self._apply(document, update, inserting=False)
            self._check_unique(document)
            return copy.deepcopy(document)

    def replace_one(self, query: Dict[str, Any], replacement: Dict[str, Any], upsert=False):
        with self._lock:
            document = self._first(query)
            if document is None:
                if not upsert:
                    return SimpleNamespace(matched_count=0, upserted_id=None)
                stored = copy.deepcopy(replacement)
                stored["_id"] = ObjectId()
                self._check_unique(stored)
                self.documents.append(stored)
                return SimpleNamespace(matched_count=0, upserted_id=stored["_id"])
            stored = copy.deepcopy(replacement)
            stored["_id"] = document["_id"]
            self._check_unique(stored)
            self.documents[self.documents.index(document)] = stored
            return SimpleNamespace(matched_count=1, upserted_id=None)

    def delete_one(self, query: Dict[str, Any]):
        with self._lock:
            document = self._first(query)
            if document is None:
                return SimpleNamespace(deleted_count=0)
            self.documents.remove(document)
            return SimpleNamespace(deleted_count=1)


class FakeDatabase:
    def __init__(self, name: str) -> None:
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}
        self._lock = threading.Lock()

    def __getitem__(self, name: str) -> FakeCollection:
        with self._lock:
            if name not in self.collections:
                self.collections[name] = FakeCollection(name)
            return self.collections[name]


class FakeMongoClient:
    def __init__(self) -> None:
        self.databases: Dict[str, FakeDatabase] = {}
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase(name))

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_mongo_client() -> FakeMongoClient:
    return FakeMongoClient()


@pytest.fixture()
def mongo_database(fake_mongo_client: FakeMongoClient) -> MongoDatabase:
    database = MongoDatabase(
        mongo_uri="mongodb://fake:27017", db_name="test_db", client=fake_mongo_client
    )
    asyncio.run(database.create_indexes())
    return database


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


class RecordingAlertSink:
    def __init__(self) -> None:
        self.events: List[AlertEvent] = []

    async def emit(self, event: AlertEvent) -> None:
        self.events.append(event)

    def statuses(self, kind: Optional[str] = None) -> List[str]:
        return [e.status for e in self.events if kind is None or e.kind == kind]


@pytest.fixture()
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


# ---------------------------------------------------------------------------
# Synthetic retail data
# ---------------------------------------------------------------------------

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def climate(day: int) -> Tuple[float, float]:
    """Deterministic temperature and precipitation for a day index."""
    temperature = 22.0 + 8.0 * math.sin(2.0 * math.pi * (day - 80) / 365.25)
    precipitation = 4.0 + 3.0 * math.cos(2.0 * math.pi * day / 365.25)
    return temperature, precipitation


def sales_curve(day: int, ts: datetime, noise: float, level: float = 200.0) -> float:
    temperature, _ = climate(day)
    seasonal = 25.0 * math.sin(2.0 * math.pi * (day - 280) / 365.25)
    weekly = 15.0 if ts.weekday() >= 5 else 0.0
    return level + seasonal + weekly + 2.0 * (temperature - 22.0) + noise


@pytest.fixture()
def seed_entity() -> Callable[..., Any]:
    """Write daily sales and climate for one entity into a feature store.

    Climate regressors are written for ``climate_days`` (defaults to
    ``days``) so later days can be forecast without observed sales.
    """

    async def _seed(
        store: InMemoryFeatureStore,
        entity_id: str,
        hierarchy: Sequence[str],
        days: int,
        start: datetime = START,
        climate_days: Optional[int] = None,
        level: float = 200.0,
        noise_scale: float = 4.0,
        seed: int = 7,
    ) -> Entity:
        entity = await store.register_entity(
            Entity(entity_id=entity_id, hierarchy=list(hierarchy))
        )
        rng = np.random.default_rng(seed)
        for day in range(climate_days or days):
            ts = start + timedelta(days=day)
            temperature, precipitation = climate(day)
            features = {"temperature": temperature, "precipitation": precipitation}
            if day < days:
                noise = float(rng.normal(0.0, noise_scale))
                features["sales"] = sales_curve(day, ts, noise, level)
            await store.put_record(
                FeatureRecord(entity_id=entity_id, timestamp=ts, features=features)
            )
        return entity

    return _seed


@pytest.fixture()
def hyperparameters() -> ModelHyperparameters:
    return ModelHyperparameters(
        target_feature="sales",
        regressors=["temperature", "precipitation"],
        alpha=1.0,
        fourier_order=2,
    )
