"""Candidate-versus-incumbent promotion rule."""

import math
from typing import Optional


def should_promote(
    candidate_error: float, incumbent_error: Optional[float], min_margin: float
) -> bool:
    """
    A candidate replaces the incumbent only when its holdout error is
    strictly lower by at least ``min_margin`` (relative), so noise alone
    never causes a promotion. A scope without an incumbent always takes the
    candidate; an incumbent that could not be scored loses to any candidate
    with a finite error.
    """
    if incumbent_error is None:
        return True
    if not math.isfinite(candidate_error):
        return False
    if not math.isfinite(incumbent_error):
        return True
    return candidate_error < incumbent_error * (1.0 - min_margin)
