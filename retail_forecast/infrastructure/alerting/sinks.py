"""Alert sink implementations: structured log, HTTP webhook and fan-out."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import httpx

from retail_forecast.domain.entities.drift import AlertEvent
from retail_forecast.domain.entities.errors import AlertDeliveryError
from retail_forecast.domain.ports.alert_sink import IAlertSink
from retail_forecast.shared import get_logger

logger = get_logger(__name__)


class LoggingAlertSink:
    """Writes every alert as a structured log event."""

    async def emit(self, event: AlertEvent) -> None:
        log = logger.warning if event.status != "ok" else logger.info
        log(
            "alert.emitted",
            kind=event.kind,
            scope=event.entity_scope,
            status=event.status,
            metric=event.metric,
            window_end=event.window_end.isoformat() if event.window_end else None,
            details=event.details,
        )


class WebhookAlertSink:
    """POSTs alerts as JSON with bounded retries and exponential backoff.

    A retried request can reach the receiver more than once; the payload
    carries ``dedupe_key`` for that purpose.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._transport = transport

    def _delay(self, attempt: int) -> float:
        return min(self._backoff_base * 2**attempt, self._backoff_max)

    async def emit(self, event: AlertEvent) -> None:
        payload = event.to_payload()
        payload["dedupe_key"] = list(event.dedupe_key)
        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.post(self._url, json=payload)
                    response.raise_for_status()
                logger.debug(
                    "alert.webhook.delivered",
                    scope=event.entity_scope,
                    status=event.status,
                    attempt=attempt,
                )
                return
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_error = exc
                logger.warning(
                    "alert.webhook.retry",
                    scope=event.entity_scope,
                    attempt=attempt,
                    error=str(exc),
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._delay(attempt))

        raise AlertDeliveryError(
            f"Alert delivery to {self._url} failed",
            {
                "scope": event.entity_scope,
                "status": event.status,
                "attempts": self._max_retries + 1,
                "error": str(last_error),
            },
        )


class FanOutAlertSink:
    """Delivers each alert to every configured sink, in order."""

    def __init__(self, sinks: Sequence[IAlertSink]) -> None:
        self._sinks = list(sinks)

    async def emit(self, event: AlertEvent) -> None:
        failures = []
        for sink in self._sinks:
            try:
                await sink.emit(event)
            except AlertDeliveryError as exc:
                failures.append(exc)
        if failures:
            raise failures[0]
