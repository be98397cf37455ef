"""Calendar and exogenous design rows shared by the model families."""

from datetime import datetime
from typing import Sequence

import numpy as np
import pandas as pd

DAYS_PER_YEAR = 365.25
SECONDS_PER_DAY = 86400.0


def _index(timestamps: Sequence[datetime]) -> pd.DatetimeIndex:
    return pd.DatetimeIndex(pd.to_datetime(list(timestamps), utc=True))


def _utc(value: datetime) -> pd.Timestamp:
    stamp = pd.Timestamp(value)
    return stamp.tz_localize("UTC") if stamp.tzinfo is None else stamp.tz_convert("UTC")


def trend(timestamps: Sequence[datetime], origin: datetime) -> np.ndarray:
    """Elapsed years since ``origin``."""
    elapsed = (_index(timestamps) - _utc(origin)).total_seconds()
    return np.asarray(elapsed, dtype=float) / SECONDS_PER_DAY / DAYS_PER_YEAR


def day_of_week(timestamps: Sequence[datetime]) -> np.ndarray:
    """One-hot weekday columns, Monday first."""
    weekdays = np.asarray(_index(timestamps).dayofweek, dtype=int)
    return np.eye(7, dtype=float)[weekdays]


def annual_fourier(timestamps: Sequence[datetime], order: int) -> np.ndarray:
    """sin/cos pairs of the yearly cycle up to ``order`` harmonics."""
    if order <= 0:
        return np.empty((len(timestamps), 0), dtype=float)
    index = _index(timestamps)
    day = np.asarray(index.dayofyear - 1, dtype=float) + np.asarray(
        index.hour, dtype=float
    ) / 24.0
    angle = 2.0 * np.pi * day / DAYS_PER_YEAR
    columns = []
    for k in range(1, order + 1):
        columns.append(np.sin(k * angle))
        columns.append(np.cos(k * angle))
    return np.column_stack(columns)


def design_matrix(
    timestamps: Sequence[datetime],
    regressors: np.ndarray,
    origin: datetime,
    fourier_order: int,
) -> np.ndarray:
    """
    Stack trend, weekday, Fourier and regressor columns.

    Args:
        timestamps: Grid timestamps, one per row
        regressors: (rows, k) exogenous values, NaN where missing
        origin: Trend origin fixed at training time
        fourier_order: Number of yearly harmonics

    Returns:
        (rows, 1 + 7 + 2 * fourier_order + k) matrix
    """
    parts = [
        trend(timestamps, origin).reshape(-1, 1),
        day_of_week(timestamps),
        annual_fourier(timestamps, fourier_order),
    ]
    if regressors.ndim == 2 and regressors.shape[1]:
        parts.append(regressors)
    return np.hstack(parts)
