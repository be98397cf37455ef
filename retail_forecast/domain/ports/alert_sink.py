"""Domain port for delivering alert events to the notification collaborator."""

from __future__ import annotations

from typing import Protocol

from retail_forecast.domain.entities.drift import AlertEvent


class IAlertSink(Protocol):
    """Receives drift transitions and serving alerts.

    Delivery is at-least-once: a sink may resend an event and consumers
    dedupe on ``AlertEvent.dedupe_key``.
    """

    async def emit(self, event: AlertEvent) -> None:
        """Deliver one alert event."""
        ...
