"""Per-order chat history and message sending."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..alerts import RecoverableErrorStream
from ..core.exceptions import BusinessRejectedError, DriverSyncError, TransportError
from ..metrics_exporter import record_chat_send
from ..models import ChatMessage, classify_message
from ..polling import LivenessFn, PollLoop, PollSubscription
from ..session import SessionGate
from ..sync_logging import log_order_context
from ..transport import ChatTransport
from .base import ResponseSequencer, SyncEngine

logger = logging.getLogger(__name__)

ResizeListener = Callable[[int | str, int], None]


@dataclass(frozen=True)
class _ChatSnapshot:
    order_id: int | str
    sequence: int
    driver_id: int | None
    messages: list[ChatMessage]


class ChatSyncEngine(SyncEngine):
    """Message history and compose state for each open order chat.

    History is only ever sourced from a fetch: a sent message shows up once
    the refresh after the send returns it, never as a local insert.
    """

    name = "chat"

    def __init__(
        self,
        transport: ChatTransport,
        session: SessionGate,
        errors: RecoverableErrorStream | None = None,
        on_history_resized: ResizeListener | None = None,
    ) -> None:
        super().__init__(session, errors)
        self._transport = transport
        self._on_history_resized = on_history_resized
        self._histories: dict[int | str, list[ChatMessage]] = {}
        self._sequencers: dict[int | str, ResponseSequencer] = {}
        self._drafts: dict[int | str, str] = {}
        self._compose_errors: set[int | str] = set()

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    def history(self, order_id: int | str) -> list[ChatMessage]:
        return list(self._histories.get(order_id, []))

    def draft(self, order_id: int | str) -> str:
        return self._drafts.get(order_id, "")

    def compose(self, order_id: int | str, text: str) -> None:
        """Update the compose field as the driver types."""
        self._drafts[order_id] = text

    def compose_error(self, order_id: int | str) -> bool:
        return order_id in self._compose_errors

    def reset(self) -> None:
        self._histories.clear()
        for sequencer in self._sequencers.values():
            sequencer.reset()
        self._drafts.clear()
        self._compose_errors.clear()
        self._notify_changed()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, order_id: int | str) -> bool:
        """Replace the history of ``order_id``; failures are logged only."""
        if self._driver_id() is None:
            return False
        try:
            snapshot = await self._fetch_snapshot(order_id)
        except DriverSyncError as exc:
            self._handle_refresh_error(exc)
            return False
        return self._apply(snapshot)

    async def _fetch_snapshot(self, order_id: int | str) -> _ChatSnapshot:
        sequence = self._sequencers.setdefault(order_id, ResponseSequencer()).issue()
        driver_id = self._driver_id()
        messages = await self._transport.fetch_messages(order_id)
        return _ChatSnapshot(
            order_id=order_id, sequence=sequence, driver_id=driver_id, messages=messages
        )

    def _apply(self, snapshot: _ChatSnapshot) -> bool:
        if snapshot.driver_id != self._driver_id():
            logger.debug("Discarding chat fetched for driver %s", snapshot.driver_id)
            return False
        sequencer = self._sequencers.get(snapshot.order_id)
        if sequencer is None or not sequencer.accept(snapshot.sequence):
            logger.debug("Discarding stale chat response for order %s", snapshot.order_id)
            return False
        previous = self._histories.get(snapshot.order_id)
        self._histories[snapshot.order_id] = list(snapshot.messages)
        size = len(snapshot.messages)
        # Scroll only on growth/shrink, not on every identical tick.
        if (previous is None or len(previous) != size) and self._on_history_resized is not None:
            self._on_history_resized(snapshot.order_id, size)
        self._notify_changed()
        return True

    def _handle_refresh_error(self, exc: DriverSyncError) -> None:
        # Chat history is best effort; only send failures reach the user.
        logger.info("Chat refresh failed: %s", exc.message)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, order_id: int | str, text: str | None = None) -> bool:
        """Send ``text`` (or the current draft) to the order chat.

        Empty text and a missing identity are dropped without a request.
        On success the draft is cleared and history refreshed; on failure
        the draft is kept and an error is reported.
        """
        if text is not None:
            self._drafts[order_id] = text
        trimmed = self.draft(order_id).strip()
        if not trimmed:
            return False
        driver_id = self._driver_id()
        if driver_id is None:
            return False

        kind = classify_message(trimmed)
        with log_order_context(order_id, driver_id=driver_id):
            logger.info("Sending %s chat message", kind.value)
            try:
                result = await self._transport.send_message(
                    order_id, str(driver_id), trimmed, kind
                )
            except TransportError as exc:
                record_chat_send("transport")
                self._send_failed(order_id, exc)
                return False

            if not result.success:
                record_chat_send("rejected")
                self._send_failed(
                    order_id,
                    BusinessRejectedError(
                        "Failed to send message", details={"order_id": order_id}
                    ),
                )
                return False

            record_chat_send("success")
            self._drafts[order_id] = ""
            self._compose_errors.discard(order_id)
            self._notify_changed()
            await self.refresh(order_id)
            return True

    def _send_failed(self, order_id: int | str, exc: DriverSyncError) -> None:
        self._compose_errors.add(order_id)
        self._errors.report(exc)
        self._notify_changed()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(
        self,
        poll_loop: PollLoop,
        order_id: int | str,
        is_visible: LivenessFn,
        interval: float = 3.0,
    ) -> PollSubscription[_ChatSnapshot]:
        return poll_loop.start(
            lambda: self._fetch_snapshot(order_id),
            interval,
            lambda: is_visible() and self._session.signed_in,
            on_result=self._apply,
            on_error=self._on_poll_error,
            name=f"chat:{order_id}",
        )
