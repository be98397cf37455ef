"""Status of a stored artifact as seen through the active mapping."""

from typing import Optional

from retail_forecast.domain.entities.model_artifact import ArtifactStatus


def effective_status(
    stored: ArtifactStatus, model_id: str, active_model_id: Optional[str]
) -> ArtifactStatus:
    """
    Status as implied by the active mapping.

    The mapping is the single source of truth: a document still marked
    active after losing the mapping reads as retired.
    """
    if active_model_id == model_id:
        return ArtifactStatus.ACTIVE
    if stored is ArtifactStatus.ACTIVE:
        return ArtifactStatus.RETIRED
    return stored
