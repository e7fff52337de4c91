"""Shared fixtures: session, alert stream and transport doubles."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from driver_sync.alerts import RecoverableErrorStream
from driver_sync.models import ChatMessage, MutationResult, Notification, Order
from driver_sync.session import DriverIdentity, SessionGate


def make_order(order_id: int = 1, status: str | None = "Accepted", **overrides) -> Order:
    """Build an Order the way the orders endpoint would return it."""
    payload = {
        "id": order_id,
        "driver_status": status,
        "address": "King Fahd Rd, Riyadh",
        "staff_name": "Sara",
        "time_slot_value": "10:00 - 12:00",
        "staff_phone": "0501234567",
        "staff_whatsapp": "0501234567",
    }
    payload.update(overrides)
    return Order.model_validate(payload)


def make_message(text: str, user: str = "self", created_at: str = "2024-01-01T10:00:00Z"):
    return ChatMessage.model_validate({"user": user, "text": text, "created_at": created_at})


def make_notification(notification_id: int, title: str = "New order") -> Notification:
    return Notification.model_validate(
        {"id": notification_id, "title": title, "body": "...", "created_at": "2024-01-01T10:00:00Z"}
    )


@pytest.fixture
def identity() -> DriverIdentity:
    return DriverIdentity(driver_id=42, name="Test Driver")


@pytest.fixture
def session(identity: DriverIdentity) -> SessionGate:
    """Session gate with a signed-in driver."""
    return SessionGate(identity)


@pytest.fixture
def alerts() -> RecoverableErrorStream:
    return RecoverableErrorStream()


@pytest.fixture
def order_transport() -> AsyncMock:
    transport = AsyncMock()
    transport.fetch_orders.return_value = [make_order(1, "Accepted"), make_order(2, "Pick me")]
    transport.submit_status.return_value = MutationResult(success=True)
    return transport


@pytest.fixture
def chat_transport() -> AsyncMock:
    transport = AsyncMock()
    transport.fetch_messages.return_value = [make_message("hello"), make_message("hi", "Sara")]
    transport.send_message.return_value = MutationResult(success=True)
    return transport


@pytest.fixture
def notification_transport() -> AsyncMock:
    transport = AsyncMock()
    transport.fetch_notifications.return_value = [make_notification(1), make_notification(2)]
    return transport


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` holds or fail after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
