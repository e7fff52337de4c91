"""HTTP transport for the driver backend.

The sync engines depend only on the three protocols below; ``DriverApiClient``
is the httpx implementation used by the app, and tests substitute fakes.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .core.exceptions import (
    MalformedResponseError,
    NetworkError,
    RequestFailedError,
    ServiceUnavailableError,
)
from .models import (
    ChatMessage,
    MessageKind,
    MutationResult,
    Notification,
    NotificationsResponse,
    Order,
    OrdersResponse,
)
from .settings import ApiSettings

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_chat_history = TypeAdapter(list[ChatMessage] | None)


class OrderTransport(Protocol):
    async def fetch_orders(self, driver_id: int) -> list[Order]: ...

    async def submit_status(
        self, order_id: int | str, next_status: str, driver_id: int
    ) -> MutationResult: ...


class ChatTransport(Protocol):
    async def fetch_messages(self, order_id: int | str) -> list[ChatMessage]: ...

    async def send_message(
        self, order_id: int | str, author: str, text: str, kind: MessageKind
    ) -> MutationResult: ...


class NotificationTransport(Protocol):
    async def fetch_notifications(self, driver_id: int) -> list[Notification]: ...


class DriverApiClient:
    """Async client for the driver REST endpoints."""

    def __init__(
        self,
        settings: ApiSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = settings.base_url.rstrip("/")
        self._chat_url = settings.chat_base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> DriverApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def fetch_orders(self, driver_id: int) -> list[Order]:
        data = await self._request(
            "GET", f"{self._api_url}/driverOrders", params={"user_id": driver_id}
        )
        return self._parse(OrdersResponse, data).orders or []

    async def submit_status(
        self, order_id: int | str, next_status: str, driver_id: int
    ) -> MutationResult:
        # The driver id authorizes the change and is always sent.
        data = await self._request(
            "GET",
            f"{self._api_url}/driverOrderStatusUpdate/{order_id}",
            params={"status": next_status, "user_id": driver_id},
        )
        return self._parse(MutationResult, data)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def fetch_messages(self, order_id: int | str) -> list[ChatMessage]:
        data = await self._request("GET", f"{self._chat_url}/driver/order/{order_id}/chats")
        try:
            return _chat_history.validate_python(data) or []
        except PydanticValidationError as exc:
            raise MalformedResponseError(
                "Unexpected chat history payload", details={"order_id": order_id}
            ) from exc

    async def send_message(
        self, order_id: int | str, author: str, text: str, kind: MessageKind
    ) -> MutationResult:
        data = await self._request(
            "POST",
            f"{self._chat_url}/driver/order/{order_id}/chats",
            json={"user_id": author, "text": text, "type": kind.to_wire()},
        )
        return self._parse(MutationResult, data)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def fetch_notifications(self, driver_id: int) -> list[Notification]:
        data = await self._request(
            "GET", f"{self._api_url}/notification", params={"user_id": driver_id}
        )
        return self._parse(NotificationsResponse, data).notifications or []

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        logger.debug("API request %s %s params=%s", method, url, kwargs.get("params"))
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {url} timed out", details={"url": url}) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}", details={"url": url}) from exc

        if response.status_code >= 500:
            raise ServiceUnavailableError(
                f"{method} {url} returned {response.status_code}",
                details={"url": url, "status": response.status_code},
            )
        if not response.is_success:
            raise RequestFailedError(
                f"{method} {url} returned {response.status_code}",
                details={"url": url, "status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"{method} {url} returned non-JSON body",
                details={"url": url, "status": response.status_code},
            ) from exc

        logger.debug("API response %s %s status=%d", method, url, response.status_code)
        return data

    @staticmethod
    def _parse(model: type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            raise MalformedResponseError(
                f"Unexpected {model.__name__} payload", details={"errors": exc.error_count()}
            ) from exc
