"""
Shared module - Cross-cutting concerns / Shared Layer

This module provides shared utilities, constants, and enums that are used
across multiple layers of the application (environment names, log levels,
storage backends, logging configuration).

It must not depend on Infrastructure or Frameworks.
"""

from .consts import EnumDispatchMode, EnumEnvironment, EnumLogLevel, EnumStorageBackend
from .logging import configure_logging, get_logger, update_logging_from_settings

__all__ = [
    "EnumDispatchMode",
    "EnumEnvironment",
    "EnumLogLevel",
    "EnumStorageBackend",
    "configure_logging",
    "get_logger",
    "update_logging_from_settings",
]
