"""
Logging Configuration - Shared Layer

Configures structlog on top of the standard logging module so that both
library loggers (pymongo, celery, uvicorn) and our own structured events are
rendered by the same formatter.
"""

import logging
import os
import sys
from typing import Any, Iterable, List, Optional

import structlog
from structlog.types import Processor

from retail_forecast.shared.consts import EnumEnvironment

# Third-party loggers that are far too chatty at DEBUG/INFO.
_QUIET_LOGGERS = ("pymongo", "httpx", "httpcore", "urllib3", "tensorflow")


def _shared_processors() -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _quiet(names: Iterable[str], level: int) -> None:
    for name in names:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def configure_logging(
    level: Optional[str] = None,
    file_path: Optional[str] = None,
    environment: str = EnumEnvironment.DEVELOPMENT.value,
) -> None:
    """
    Configure structlog and the root logger.

    Called once at process start (before settings are loaded) using the
    LOG_LEVEL / LOG_FILE_PATH environment variables, and again from
    update_logging_from_settings once the settings object exists.

    Args:
        level: Log level name; defaults to LOG_LEVEL or INFO.
        file_path: Optional log file; defaults to LOG_FILE_PATH.
        environment: Production renders JSON, anything else renders for humans.
    """
    log_level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    log_file = file_path or os.environ.get("LOG_FILE_PATH")
    numeric_level = getattr(logging, log_level, logging.INFO)

    renderer: Processor
    if environment.lower() == EnumEnvironment.PRODUCTION.value:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_shared_processors(),
        ],
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.handlers = handlers
    root_logger.setLevel(numeric_level)
    _quiet(_QUIET_LOGGERS, numeric_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    get_logger(__name__).debug(
        "logging.configured", level=log_level, file_path=log_file
    )


def update_logging_from_settings(settings: Any) -> None:
    """Re-apply the logging configuration from the loaded AppSettings."""
    level = settings.logging.level
    environment = settings.environment
    configure_logging(
        level=getattr(level, "value", level),
        file_path=settings.logging.file_path,
        environment=getattr(environment, "value", environment),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger configured for the project."""
    return structlog.get_logger(name)
