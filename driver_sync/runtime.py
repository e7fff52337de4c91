"""Wiring of transport, session, engines and polling for one app process."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from .alerts import RecoverableErrorStream
from .engines import ChatSyncEngine, NotificationSyncEngine, OrderSyncEngine
from .polling import PollLoop, PollSubscription
from .session import DriverIdentity, SessionGate
from .settings import Settings
from .transport import DriverApiClient

logger = logging.getLogger(__name__)


class DriverClient:
    """The sync core as the presentation layer sees it.

    Screens toggle visibility through ``show_*``/``hide_*`` and
    ``open_chat``; the session gate and visibility together decide which
    subscriptions are live. Every subscription is stopped in ``aclose``.
    """

    def __init__(
        self,
        settings: Settings,
        api: DriverApiClient | None = None,
        session: SessionGate | None = None,
    ) -> None:
        self.settings = settings
        self.api = api or DriverApiClient(settings.api)
        self.session = session or SessionGate()
        self.alerts = RecoverableErrorStream()
        self.poll_loop = PollLoop()

        self.orders = OrderSyncEngine(self.api, self.session, self.alerts)
        self.chat = ChatSyncEngine(self.api, self.session, self.alerts)
        self.notifications = NotificationSyncEngine(self.api, self.session, self.alerts)

        self._visible: set[str] = set()
        self._orders_sub: PollSubscription[Any] | None = None
        self._notifications_sub: PollSubscription[Any] | None = None
        self._unsubscribe_session = self.session.subscribe(self._on_identity_changed)
        self._closed = False

    async def __aenter__(self) -> DriverClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def sign_in(self, driver_id: int, name: str | None = None) -> None:
        self.session.sign_in(DriverIdentity(driver_id=driver_id, name=name))

    def sign_out(self) -> None:
        self.session.sign_out()

    def _on_identity_changed(self, identity: DriverIdentity | None) -> None:
        # Another driver's data must never show, even for one tick.
        self.orders.reset()
        self.chat.reset()
        self.notifications.reset()
        self.poll_loop.invalidate()

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def is_visible(self, screen: str) -> bool:
        return screen in self._visible

    def _set_visible(self, screen: str, visible: bool) -> None:
        if visible:
            self._visible.add(screen)
        else:
            self._visible.discard(screen)
        self.poll_loop.notify_liveness_changed()

    def show_orders(self) -> None:
        if self._orders_sub is None:
            self._orders_sub = self.orders.start_polling(
                self.poll_loop,
                lambda: self.is_visible("orders"),
                interval=self.settings.polling.orders_interval_seconds,
            )
        self._set_visible("orders", True)

    def hide_orders(self) -> None:
        self._set_visible("orders", False)

    def show_notifications(self) -> None:
        if self._notifications_sub is None:
            self._notifications_sub = self.notifications.start_polling(
                self.poll_loop,
                lambda: self.is_visible("notifications"),
                interval=self.settings.polling.notifications_interval_seconds,
            )
        self._set_visible("notifications", True)

    def hide_notifications(self) -> None:
        self._set_visible("notifications", False)

    @asynccontextmanager
    async def open_chat(self, order_id: int | str) -> AsyncIterator[ChatSyncEngine]:
        """Poll the chat of ``order_id`` while the block is running."""
        screen = f"chat:{order_id}"
        subscription = self.chat.start_polling(
            self.poll_loop,
            order_id,
            lambda: self.is_visible(screen),
            interval=self.settings.polling.chat_interval_seconds,
        )
        self._set_visible(screen, True)
        try:
            yield self.chat
        finally:
            self._set_visible(screen, False)
            self.poll_loop.stop(subscription)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def advance_order(self, order_id: int | str) -> bool:
        """Apply the action button of ``order_id`` as currently displayed."""
        order = self.orders.get(order_id)
        if order is None:
            logger.info("Order %s is not in the current list; ignoring", order_id)
            return False
        return await self.orders.request_transition(order_id, order.driver_status)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_session()
        self._visible.clear()
        logger.info("Stopping %d poll subscription(s)", len(self.poll_loop.subscriptions))
        await self.poll_loop.aclose()
        await self.api.aclose()
        logger.info("Driver client closed")
