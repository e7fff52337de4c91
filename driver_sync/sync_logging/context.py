"""Task-local logging context for adding fields to log records."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# Each asyncio task runs in its own copy of the context, so fields set by
# one poll subscription never leak into another.
_log_fields: ContextVar[dict[str, Any] | None] = ContextVar("log_fields", default=None)


class LogContext:
    """Context-variable storage for log context fields."""

    @classmethod
    def set(cls, **kwargs: Any) -> None:
        _log_fields.set({**cls.get(), **kwargs})

    @classmethod
    def get(cls) -> dict[str, Any]:
        return _log_fields.get() or {}

    @classmethod
    def clear(cls) -> None:
        _log_fields.set(None)


class ContextFilter(logging.Filter):
    """Injects LogContext fields into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LogContext.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Context manager that sets logging context fields.

    Fields are injected into log records via ContextFilter, which must
    be attached to the handler (see setup_logging). The previous fields
    are restored on exit, so contexts nest.
    """
    token = _log_fields.set({**LogContext.get(), **kwargs})
    try:
        yield
    finally:
        _log_fields.reset(token)


@contextmanager
def log_order_context(order_id: int | str, **kwargs: Any) -> Iterator[None]:
    """Convenience context manager for per-order operations."""
    correlation_id = kwargs.pop("correlation_id", f"order-{order_id}")
    with log_context(order_id=order_id, correlation_id=correlation_id, **kwargs):
        yield
