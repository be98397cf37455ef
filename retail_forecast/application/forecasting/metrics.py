"""Error metrics used for back-testing and drift detection.

Percentage errors divide by ``max(|actual|, floor)`` where ``floor`` is in
target units, and each error is capped at ``cap``. Zero sales are routine,
so one empty day must not dominate a window.
"""

import math
from typing import Dict

import numpy as np

DEFAULT_DENOMINATOR_FLOOR = 1.0
DEFAULT_ERROR_CAP = 1.0


def absolute_percentage_error(
    actual: float,
    predicted: float,
    floor: float = DEFAULT_DENOMINATOR_FLOOR,
    cap: float = DEFAULT_ERROR_CAP,
) -> float:
    """min(|actual - predicted| / max(|actual|, floor), cap)."""
    return min(abs(actual - predicted) / max(abs(actual), floor), cap)


def mape(
    actual: np.ndarray,
    predicted: np.ndarray,
    floor: float = DEFAULT_DENOMINATOR_FLOOR,
    cap: float = DEFAULT_ERROR_CAP,
) -> float:
    """Mean absolute percentage error as a fraction; NaN without finite pairs."""
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    mask = np.isfinite(actual) & np.isfinite(predicted)
    if not np.any(mask):
        return math.nan
    denominator = np.maximum(np.abs(actual[mask]), floor)
    errors = np.minimum(np.abs(actual[mask] - predicted[mask]) / denominator, cap)
    return float(np.mean(errors))


def regression_metrics(actual: np.ndarray, predicted: np.ndarray) -> Dict[str, float]:
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    mask = np.isfinite(actual) & np.isfinite(predicted)
    if not np.any(mask):
        return {"mae": math.nan, "rmse": math.nan, "mape": math.nan}
    errors = actual[mask] - predicted[mask]
    return {
        "mae": float(np.mean(np.abs(errors))),
        "rmse": float(np.sqrt(np.mean(errors**2))),
        "mape": mape(actual[mask], predicted[mask]),
    }
