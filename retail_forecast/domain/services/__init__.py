"""Domain services: pure functions shared by several implementations."""

from .artifact_status import effective_status
from .feature_grid import latest_wins_rows
from .promotion_policy import should_promote

__all__ = ["effective_status", "latest_wins_rows", "should_promote"]
