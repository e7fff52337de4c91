"""Shared plumbing for the sync engines."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..alerts import RecoverableErrorStream
from ..core.exceptions import DriverSyncError
from ..session import SessionGate

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class ResponseSequencer:
    """Drops responses that arrive after a newer one was already applied.

    A background poll started before a mutation can settle after the
    refresh the mutation triggered; without this the view would flick back
    to the pre-mutation state until the next tick.
    """

    def __init__(self) -> None:
        self._issued = 0
        self._floor = 0

    def issue(self) -> int:
        self._issued += 1
        return self._issued

    def accept(self, sequence: int) -> bool:
        if sequence < self._floor:
            return False
        self._floor = sequence
        return True

    def reset(self) -> None:
        """Reject every ticket issued so far, including ones still in flight."""
        self._floor = self._issued + 1


class SyncEngine:
    """Base class: identity gate, error reporting and change listeners."""

    name = "sync"

    def __init__(
        self,
        session: SessionGate,
        errors: RecoverableErrorStream | None = None,
    ) -> None:
        self._session = session
        self._errors = errors or RecoverableErrorStream()
        self._listeners: list[ChangeListener] = []

    @property
    def errors(self) -> RecoverableErrorStream:
        return self._errors

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` whenever the engine's view state changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _driver_id(self) -> int | None:
        identity = self._session.current_identity()
        return identity.driver_id if identity is not None else None

    def _notify_changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("%s change listener %r failed", self.name, listener)

    def _on_poll_error(self, exc: Exception) -> None:
        if isinstance(exc, DriverSyncError):
            self._handle_refresh_error(exc)
        else:
            logger.exception("Unexpected %s poll failure", self.name, exc_info=exc)

    def _handle_refresh_error(self, exc: DriverSyncError) -> None:
        self._errors.report(exc)
