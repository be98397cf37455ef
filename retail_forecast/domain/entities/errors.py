"""
Domain Errors

This module defines the error taxonomy shared by every layer. Controllers map
these to HTTP statuses; the scheduler maps TrainingFailure to job failures.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when an entity or model is unknown."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            f"{kind} '{identifier}' not found",
            {"kind": kind, "identifier": identifier},
        )
        self.kind = kind
        self.identifier = identifier


class ValidationError(DomainError):
    """Raised when input data violates a domain rule."""


class MissingRegressorError(DomainError):
    """Raised when an exogenous regressor is absent at prediction time."""

    def __init__(self, entity_id: str, regressor: str, timestamp: datetime):
        super().__init__(
            f"Regressor '{regressor}' missing for entity '{entity_id}' "
            f"at {timestamp.isoformat()}",
            {
                "entity_id": entity_id,
                "regressor": regressor,
                "timestamp": timestamp.isoformat(),
            },
        )
        self.entity_id = entity_id
        self.regressor = regressor
        self.timestamp = timestamp


class NoActiveModelError(DomainError):
    """Raised when a scope was never trained or its promotion is pending."""

    def __init__(self, scope: str):
        super().__init__(f"No active model for scope '{scope}'", {"scope": scope})
        self.scope = scope


class TrainingFailure(DomainError):
    """Raised on non-convergence, insufficient samples or timeout."""

    INSUFFICIENT_SAMPLES = "insufficient_samples"
    NON_CONVERGENCE = "non_convergence"
    TIMEOUT = "timeout"
    STOPPED = "stopped"

    def __init__(
        self, message: str, reason: str, details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, {"reason": reason, **(details or {})})
        self.reason = reason


class ConcurrentPromotionConflict(DomainError):
    """Raised when the compare-and-swap on the active mapping lost a race.

    Callers are expected to re-read the active model and retry.
    """

    def __init__(
        self, scope: str, expected_model_id: Optional[str], actual_model_id: Optional[str]
    ):
        super().__init__(
            f"Active model of scope '{scope}' changed concurrently",
            {
                "scope": scope,
                "expected_model_id": expected_model_id,
                "actual_model_id": actual_model_id,
            },
        )
        self.scope = scope
        self.expected_model_id = expected_model_id
        self.actual_model_id = actual_model_id


class ModelStateError(DomainError):
    """Raised when an artifact is used in a status that does not allow it."""


class TransientStorageError(DomainError):
    """Raised by repositories for errors worth retrying (network, failover)."""


class AlertDeliveryError(DomainError):
    """Raised when an alert could not be delivered after every retry."""
