"""Domain entities for served predictions and the actuals they are paired with."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from retail_forecast.domain.entities.errors import ValidationError
from retail_forecast.domain.entities.feature import ensure_utc

DEFAULT_COVERAGE = 0.8


@dataclass(frozen=True)
class ConfidenceInterval:
    """Interval around a point forecast at a nominal coverage."""

    lower: float
    upper: float
    coverage: float = DEFAULT_COVERAGE

    def __post_init__(self) -> None:
        if not 0.0 < self.coverage < 1.0:
            raise ValidationError("coverage must be in (0, 1)")
        if self.upper <= self.lower:
            raise ValidationError("confidence interval must have positive width")

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper


@dataclass(frozen=True)
class Prediction:
    """A point forecast for (entity_id, target_timestamp). Immutable."""

    model_id: str
    entity_scope: str
    entity_id: str
    target_timestamp: datetime
    predicted_value: float
    confidence_interval: ConfidenceInterval
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    prediction_id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_timestamp", ensure_utc(self.target_timestamp))
        object.__setattr__(self, "generated_at", ensure_utc(self.generated_at))


@dataclass(frozen=True)
class ActualObservation:
    """Observed value, paired with predictions by (entity_id, timestamp)."""

    entity_id: str
    timestamp: datetime
    observed_value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @property
    def key(self) -> tuple:
        return (self.entity_id, self.timestamp)
