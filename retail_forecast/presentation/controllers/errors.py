"""Mapping of domain errors to HTTP responses."""

from typing import Dict, Type

from fastapi import HTTPException, status

from retail_forecast.domain.entities.errors import (
    AlertDeliveryError,
    ConcurrentPromotionConflict,
    DomainError,
    MissingRegressorError,
    ModelStateError,
    NoActiveModelError,
    NotFoundError,
    TrainingFailure,
    TransientStorageError,
    ValidationError,
)

# Checked in order; subclasses before their bases.
_STATUS_BY_ERROR: Dict[Type[DomainError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NoActiveModelError: status.HTTP_409_CONFLICT,
    ConcurrentPromotionConflict: status.HTTP_409_CONFLICT,
    ModelStateError: status.HTTP_409_CONFLICT,
    MissingRegressorError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TrainingFailure: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransientStorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
    AlertDeliveryError: status.HTTP_502_BAD_GATEWAY,
}


def to_http_exception(error: DomainError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(
        status_code=status_code,
        detail={
            "error": type(error).__name__,
            "message": error.message,
            "details": error.details,
        },
    )


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )
