"""Notification feed synchronization."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..alerts import RecoverableErrorStream
from ..core.exceptions import DriverSyncError
from ..models import Notification
from ..polling import LivenessFn, PollLoop, PollSubscription
from ..session import SessionGate
from ..transport import NotificationTransport
from .base import ResponseSequencer, SyncEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _NotificationsSnapshot:
    sequence: int
    driver_id: int
    notifications: list[Notification]


class NotificationSyncEngine(SyncEngine):
    """Read-only feed, replaced wholesale on every successful fetch."""

    name = "notifications"

    def __init__(
        self,
        transport: NotificationTransport,
        session: SessionGate,
        errors: RecoverableErrorStream | None = None,
    ) -> None:
        super().__init__(session, errors)
        self._transport = transport
        self._notifications: list[Notification] = []
        self._sequencer = ResponseSequencer()
        self._loading = True

    @property
    def notifications(self) -> list[Notification]:
        return list(self._notifications)

    @property
    def loading(self) -> bool:
        return self._loading

    def reset(self) -> None:
        self._notifications = []
        self._sequencer.reset()
        self._loading = True
        self._notify_changed()

    async def refresh(self) -> bool:
        driver_id = self._driver_id()
        if driver_id is None:
            return False
        try:
            snapshot = await self._fetch_snapshot(driver_id)
        except DriverSyncError as exc:
            self._handle_refresh_error(exc)
            return False
        return self._apply(snapshot)

    async def _fetch_snapshot(self, driver_id: int) -> _NotificationsSnapshot:
        sequence = self._sequencer.issue()
        notifications = await self._transport.fetch_notifications(driver_id)
        return _NotificationsSnapshot(sequence, driver_id, notifications)

    async def _poll_fetch(self) -> _NotificationsSnapshot:
        driver_id = self._driver_id()
        if driver_id is None:
            raise RuntimeError("notifications poll ran without an identity")
        return await self._fetch_snapshot(driver_id)

    def _apply(self, snapshot: _NotificationsSnapshot) -> bool:
        self._loading = False
        if snapshot.driver_id != self._driver_id():
            return False
        if not self._sequencer.accept(snapshot.sequence):
            return False
        self._notifications = list(snapshot.notifications)
        self._notify_changed()
        return True

    def _handle_refresh_error(self, exc: DriverSyncError) -> None:
        # Background feed: a failed tick is logged, the next one retries.
        self._loading = False
        logger.warning("Notification refresh failed: %s", exc.message)
        self._notify_changed()

    def start_polling(
        self, poll_loop: PollLoop, is_visible: LivenessFn, interval: float = 3.0
    ) -> PollSubscription[_NotificationsSnapshot]:
        return poll_loop.start(
            self._poll_fetch,
            interval,
            lambda: is_visible() and self._session.signed_in,
            on_result=self._apply,
            on_error=self._on_poll_error,
            name="notifications",
        )
