"""Recoverable-error stream consumed by the view layer for alerts."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable

from .core.exceptions import DriverSyncError

logger = logging.getLogger(__name__)

AlertListener = Callable[[DriverSyncError], None]


class RecoverableErrorStream:
    """Fan-out of recoverable errors raised by the sync engines.

    Errors are buffered until drained so a view that attaches late still
    sees them; listeners get each error as it is reported.
    """

    def __init__(self, maxlen: int = 50) -> None:
        self._pending: deque[DriverSyncError] = deque(maxlen=maxlen)
        self._listeners: set[AlertListener] = set()

    @property
    def pending(self) -> list[DriverSyncError]:
        return list(self._pending)

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def report(self, error: DriverSyncError) -> None:
        logger.warning("Recoverable %s error: %s", error.kind, error.message)
        self._pending.append(error)
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Alert listener %r failed", listener)

    def drain(self) -> list[DriverSyncError]:
        """Return and forget every pending error (the user dismissed them)."""
        errors = list(self._pending)
        self._pending.clear()
        return errors
