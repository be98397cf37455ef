"""Merge stored feature values onto an entity's time grid."""

from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, Optional, Sequence

from retail_forecast.domain.entities.feature import (
    MISSING,
    FeatureRow,
    FeatureValue,
    FeatureValueRecord,
    TimeRange,
)


def latest_wins_rows(
    records: Iterable[FeatureValueRecord],
    time_range: TimeRange,
    step: timedelta,
    feature_names: Sequence[str],
) -> Iterator[FeatureRow]:
    """
    Lazily turn stored values into one row per grid timestamp.

    Args:
        records: Values inside ``time_range`` sorted by timestamp. Within a
            timestamp, later items win ties on ingestion_time.
        time_range: Window to cover. The grid keeps the sampling phase of
            the first stored value and starts at its first point inside
            the window.
        step: Sampling step of the entity.
        feature_names: Features every row reports; absent ones are MISSING.

    Yields:
        FeatureRow for every grid point, or nothing when the window holds no
        values at all. Values off the grid are ignored.
    """
    iterator = iter(records)
    pending: Optional[FeatureValueRecord] = next(iterator, None)
    if pending is None:
        return

    for timestamp in _phased(time_range, pending.timestamp, step).grid(step):
        values: Dict[str, FeatureValue] = {name: MISSING for name in feature_names}
        seen: Dict[str, object] = {}
        while pending is not None and pending.timestamp <= timestamp:
            if pending.timestamp == timestamp and pending.feature_name in values:
                previous = seen.get(pending.feature_name)
                if previous is None or pending.ingestion_time >= previous:
                    values[pending.feature_name] = pending.value
                    seen[pending.feature_name] = pending.ingestion_time
            pending = next(iterator, None)
        yield FeatureRow(timestamp=timestamp, values=values)


def _phased(time_range: TimeRange, anchor: datetime, step: timedelta) -> TimeRange:
    # First grid point at or after the window start that shares the anchor's phase.
    start = anchor - ((anchor - time_range.start) // step) * step
    return TimeRange(start, time_range.end)
