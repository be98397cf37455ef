"""
Domain Entities - Model artifacts

A model artifact is a trained, versioned forecasting model for one scope.
Artifacts are created by the forecast engine, stored by the registry and
promoted or retired by the retraining scheduler.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from retail_forecast.domain.entities.entity import EntityScope
from retail_forecast.domain.entities.errors import ValidationError
from retail_forecast.domain.entities.feature import TimeRange


class ModelType(str, Enum):
    """Forecast model family."""

    CLIMATE_REGRESSION = "climate_regression"
    LSTM = "lstm"
    GRU = "gru"


class ArtifactStatus(str, Enum):
    """Lifecycle status of an artifact."""

    TRAINING = "training"
    CANDIDATE = "candidate"
    ACTIVE = "active"
    RETIRED = "retired"


SERVABLE_STATUSES = frozenset({ArtifactStatus.CANDIDATE, ArtifactStatus.ACTIVE})
PROMOTABLE_STATUSES = frozenset({ArtifactStatus.CANDIDATE, ArtifactStatus.RETIRED})


@dataclass
class ModelHyperparameters:
    """Hyperparameters of every model family.

    Families ignore the fields they do not use. ``from_dict`` tolerates
    unknown and missing keys so stored artifacts survive new fields.
    """

    model_type: ModelType = ModelType.CLIMATE_REGRESSION
    target_feature: str = "sales"
    regressors: List[str] = field(default_factory=list)
    random_seed: int = 42

    # climate_regression
    alpha: float = 1.0
    fourier_order: int = 2

    # lstm / gru
    lookback_window: int = 14
    units: int = 32
    epochs: int = 50
    batch_size: int = 32
    learning_rate: float = 0.001
    early_stopping_patience: Optional[int] = 5

    def validate(self) -> None:
        errors: List[str] = []
        if not self.target_feature:
            errors.append("target_feature must not be empty")
        if self.target_feature in self.regressors:
            errors.append("target_feature cannot also be a regressor")
        if self.alpha < 0:
            errors.append("alpha must be non-negative")
        if self.fourier_order < 0:
            errors.append("fourier_order must be non-negative")
        if self.lookback_window <= 0:
            errors.append("lookback_window must be positive")
        if self.units <= 0 or self.epochs <= 0 or self.batch_size <= 0:
            errors.append("units, epochs and batch_size must be positive")
        if not 0.0 < self.learning_rate <= 1.0:
            errors.append("learning_rate must be in (0, 1]")
        if errors:
            raise ValidationError(
                "Invalid hyperparameters", {"errors": errors}
            )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["model_type"] = self.model_type.value
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ModelHyperparameters":
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in payload.items() if key in known}
        if "model_type" in values:
            values["model_type"] = ModelType(values["model_type"])
        if "regressors" in values:
            values["regressors"] = list(values["regressors"] or [])
        return cls(**values)


@dataclass
class ModelArtifact:
    """A trained forecasting model for one entity scope."""

    entity_scope: EntityScope
    model_type: ModelType
    training_window: TimeRange
    hyperparameters: ModelHyperparameters
    serialized_parameters: bytes = b""
    model_id: str = field(default_factory=lambda: str(uuid4()))
    version: int = 0
    status: ArtifactStatus = ArtifactStatus.TRAINING
    metrics: Dict[str, float] = field(default_factory=dict)
    member_entities: List[str] = field(default_factory=list)
    fallback_from: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    promoted_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None

    @property
    def is_servable(self) -> bool:
        return self.status in SERVABLE_STATUSES

    @property
    def is_promotable(self) -> bool:
        return self.status in PROMOTABLE_STATUSES

    def age(self, now: Optional[datetime] = None) -> float:
        """Seconds since the artifact was trained."""
        reference = now or datetime.now(timezone.utc)
        return (reference - self.created_at).total_seconds()

    def mark_active(self, when: Optional[datetime] = None) -> None:
        self.status = ArtifactStatus.ACTIVE
        self.promoted_at = when or datetime.now(timezone.utc)
        self.retired_at = None

    def mark_retired(self, when: Optional[datetime] = None) -> None:
        self.status = ArtifactStatus.RETIRED
        self.retired_at = when or datetime.now(timezone.utc)
