"""Process-wide driver identity with change notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverIdentity:
    """The signed-in driver. Credential handling lives outside this package."""

    driver_id: int
    name: str | None = None


IdentityListener = Callable[["DriverIdentity | None"], None]


class SessionGate:
    """Single cell holding the current identity.

    Every sync engine asks the gate for the driver id before touching the
    network; poll subscriptions subscribe to it so they suspend on sign-out
    and resume on sign-in.
    """

    def __init__(self, identity: DriverIdentity | None = None) -> None:
        self._identity = identity
        self._listeners: list[IdentityListener] = []

    def current_identity(self) -> DriverIdentity | None:
        return self._identity

    @property
    def signed_in(self) -> bool:
        return self._identity is not None

    def sign_in(self, identity: DriverIdentity) -> None:
        self._set(identity)

    def sign_out(self) -> None:
        self._set(None)

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, identity: DriverIdentity | None) -> None:
        if identity == self._identity:
            return
        previous = self._identity
        self._identity = identity
        logger.info(
            "Session changed: driver %s -> %s",
            previous.driver_id if previous else None,
            identity.driver_id if identity else None,
        )
        for listener in list(self._listeners):
            try:
                listener(identity)
            except Exception:
                logger.exception("Session listener %r failed", listener)
