"""Logging infrastructure for AttributionNav."""

from attributionnav.logging.config import configure_logging, get_logger
from attributionnav.logging.context import (
    LogContext,
    add_context,
    clear_context,
    get_context,
)
from attributionnav.logging.formatters import ContextTextFormatter, JSONFormatter

__all__ = [
    "configure_logging",
    "get_logger",
    "JSONFormatter",
    "ContextTextFormatter",
    "LogContext",
    "add_context",
    "clear_context",
    "get_context",
]
