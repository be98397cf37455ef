"""Alert sinks delivering drift and serving alerts."""

from .sinks import AlertDeliveryError, FanOutAlertSink, LoggingAlertSink, WebhookAlertSink

__all__ = [
    "AlertDeliveryError",
    "FanOutAlertSink",
    "LoggingAlertSink",
    "WebhookAlertSink",
]
