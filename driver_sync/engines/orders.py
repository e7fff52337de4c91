"""Order list synchronization and driver status transitions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..alerts import RecoverableErrorStream
from ..core.exceptions import BusinessRejectedError, DriverSyncError, TransportError
from ..metrics_exporter import record_transition
from ..models import Order, OrderView
from ..polling import LivenessFn, PollLoop, PollSubscription
from ..session import SessionGate
from ..status import next_action
from ..sync_logging import log_order_context
from ..transport import OrderTransport
from .base import ResponseSequencer, SyncEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _OrdersSnapshot:
    sequence: int
    driver_id: int
    orders: list[Order]


class OrderSyncEngine(SyncEngine):
    """Owns the authoritative order list and the per-order busy marks.

    The list is only ever replaced wholesale from a fetch. The busy marks
    live in a separate set keyed by order id, so a poll that replaces the
    list while a transition is in flight leaves the busy indicator alone;
    only the transition that set a mark clears it.
    """

    name = "orders"

    def __init__(
        self,
        transport: OrderTransport,
        session: SessionGate,
        errors: RecoverableErrorStream | None = None,
        scroll_to_top: Callable[[], None] | None = None,
    ) -> None:
        super().__init__(session, errors)
        self._transport = transport
        self._scroll_to_top = scroll_to_top
        self._orders: list[Order] = []
        self._updating: set[int | str] = set()
        self._sequencer = ResponseSequencer()
        self._loading = True

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    @property
    def loading(self) -> bool:
        return self._loading

    def is_updating(self, order_id: int | str) -> bool:
        return order_id in self._updating

    def get(self, order_id: int | str) -> Order | None:
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    def views(self) -> list[OrderView]:
        return [OrderView.build(order, order.id in self._updating) for order in self._orders]

    def reset(self) -> None:
        """Forget everything; used when the signed-in driver changes."""
        self._orders = []
        self._sequencer.reset()
        self._loading = True
        self._notify_changed()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """Replace the order list from the backend.

        Returns True when a fresh list was applied. Without an identity this
        is a silent no-op; on transport failure the previous list stays and
        the error goes to the alert stream.
        """
        driver_id = self._driver_id()
        if driver_id is None:
            return False
        try:
            snapshot = await self._fetch_snapshot(driver_id)
        except DriverSyncError as exc:
            self._loading = False
            self._handle_refresh_error(exc)
            return False
        return self._apply(snapshot)

    async def _fetch_snapshot(self, driver_id: int) -> _OrdersSnapshot:
        sequence = self._sequencer.issue()
        orders = await self._transport.fetch_orders(driver_id)
        return _OrdersSnapshot(sequence=sequence, driver_id=driver_id, orders=orders)

    async def _poll_fetch(self) -> _OrdersSnapshot:
        driver_id = self._driver_id()
        if driver_id is None:
            # Liveness normally prevents this; the result is dropped anyway.
            raise RuntimeError("orders poll ran without an identity")
        return await self._fetch_snapshot(driver_id)

    def _apply(self, snapshot: _OrdersSnapshot) -> bool:
        self._loading = False
        if snapshot.driver_id != self._driver_id():
            logger.debug("Discarding orders fetched for driver %s", snapshot.driver_id)
            return False
        if not self._sequencer.accept(snapshot.sequence):
            logger.debug("Discarding out-of-order orders response #%d", snapshot.sequence)
            return False
        self._orders = list(snapshot.orders)
        self._notify_changed()
        return True

    def _handle_refresh_error(self, exc: DriverSyncError) -> None:
        self._loading = False
        self._errors.report(exc)
        self._notify_changed()

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def request_transition(self, order_id: int | str, from_status: str | None) -> bool:
        """Advance ``order_id`` one step along the driver status path.

        Returns True when the backend accepted the change. Requests for
        statuses without an action, for orders already updating, or without
        an identity are ignored.
        """
        action = next_action(from_status)
        if action is None:
            logger.debug("No action for order %s in status %r", order_id, from_status)
            return False
        if order_id in self._updating:
            logger.info("Order %s already updating; ignoring second request", order_id)
            return False
        driver_id = self._driver_id()
        if driver_id is None:
            return False

        self._updating.add(order_id)
        self._notify_changed()
        accepted = False
        try:
            with log_order_context(order_id, driver_id=driver_id):
                accepted = await self._submit(order_id, from_status, action.next_status, driver_id)
                if accepted:
                    # Server truth, not a local patch.
                    await self.refresh()
        finally:
            self._updating.discard(order_id)
            self._notify_changed()

        if accepted and self._scroll_to_top is not None:
            self._scroll_to_top()
        return accepted

    async def _submit(
        self, order_id: int | str, from_status: str | None, next_status: str, driver_id: int
    ) -> bool:
        logger.info("Submitting order %s status %r -> %r", order_id, from_status, next_status)
        try:
            result = await self._transport.submit_status(order_id, next_status, driver_id)
        except TransportError as exc:
            record_transition("transport")
            self._errors.report(exc)
            return False

        if not result.success:
            record_transition("rejected")
            self._errors.report(
                BusinessRejectedError(
                    f"Status update to {next_status!r} was rejected",
                    details={"order_id": order_id, "status": next_status},
                )
            )
            return False

        record_transition("success")
        return True

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(
        self, poll_loop: PollLoop, is_visible: LivenessFn, interval: float = 10.0
    ) -> PollSubscription[_OrdersSnapshot]:
        return poll_loop.start(
            self._poll_fetch,
            interval,
            lambda: is_visible() and self._session.signed_in,
            on_result=self._apply,
            on_error=self._on_poll_error,
            name="orders",
        )
