"""Domain entities for engineered time-series features."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Union

from retail_forecast.domain.entities.errors import ValidationError


class _Missing:
    """Explicit gap marker; features are never silently interpolated."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"

    def __reduce__(self):
        return (_Missing, ())


MISSING = _Missing()

FeatureValue = Union[float, _Missing]


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are interpreted as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeRange:
    """Half-open time window ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end < self.start:
            raise ValidationError("TimeRange end must not precede start")

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= ensure_utc(timestamp) < self.end

    def grid(self, step: timedelta) -> Iterator[datetime]:
        current = self.start
        while current < self.end:
            yield current
            current = current + step

    def split(self, at: datetime) -> tuple["TimeRange", "TimeRange"]:
        at = min(max(ensure_utc(at), self.start), self.end)
        return TimeRange(self.start, at), TimeRange(at, self.end)

    @classmethod
    def ending_at(cls, end: datetime, length: timedelta) -> "TimeRange":
        end = ensure_utc(end)
        return cls(end - length, end)


@dataclass
class FeatureRecord:
    """One ingestion of feature values for (entity_id, timestamp).

    Append-only: a correction is a new record with a later ingestion_time.
    """

    entity_id: str
    timestamp: datetime
    features: Dict[str, float]
    ingestion_time: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        self.timestamp = ensure_utc(self.timestamp)
        self.ingestion_time = ensure_utc(self.ingestion_time)
        if not self.features:
            raise ValidationError("A feature record needs at least one feature")

    def flatten(self) -> List["FeatureValueRecord"]:
        return [
            FeatureValueRecord(
                entity_id=self.entity_id,
                timestamp=self.timestamp,
                feature_name=name,
                value=float(value),
                ingestion_time=self.ingestion_time,
            )
            for name, value in self.features.items()
        ]


@dataclass(frozen=True)
class FeatureValueRecord:
    """Storage unit, keyed by (entity_id, timestamp, feature_name)."""

    entity_id: str
    timestamp: datetime
    feature_name: str
    value: float
    ingestion_time: datetime

    @property
    def key(self) -> tuple:
        return (self.entity_id, self.timestamp, self.feature_name)


@dataclass
class FeatureRow:
    """Latest-ingestion-wins feature values at one grid timestamp."""

    timestamp: datetime
    values: Dict[str, FeatureValue] = field(default_factory=dict)

    def get(self, name: str) -> FeatureValue:
        return self.values.get(name, MISSING)

    def is_missing(self, name: str) -> bool:
        return self.get(name) is MISSING

    @property
    def complete(self) -> bool:
        return all(value is not MISSING for value in self.values.values())
