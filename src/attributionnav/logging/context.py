"""Logging context for tagging attribution work with its identifiers."""

import contextvars
from typing import Any

_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "attributionnav_log_context", default=None
)


def add_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        >>> add_context(conversion_id="conv_1", model_type="linear")
        >>> logger.info("Conversion attributed")  # carries both fields
    """
    current = dict(_log_context.get() or {})
    current.update(kwargs)
    _log_context.set(current)


def clear_context() -> None:
    """Clear all fields from the logging context."""
    _log_context.set({})


def get_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return dict(_log_context.get() or {})


class LogContext:
    """Context manager that scopes log fields to a block.

    Each asyncio task gets its own copy of the context, so concurrent
    conversions never see each other's identifiers.
    """

    def __init__(self, **kwargs: Any):
        self.fields = kwargs
        self.token: contextvars.Token | None = None

    def __enter__(self) -> "LogContext":
        merged = dict(_log_context.get() or {})
        merged.update(self.fields)
        self.token = _log_context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.token is not None:
            _log_context.reset(self.token)
            self.token = None
