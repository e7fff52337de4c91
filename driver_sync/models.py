"""Backend payload models and the view records built from them."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .status import next_action

# "lat,lng" with an optional space after the comma, e.g. "24.7, 46.6"
LOCATION_PATTERN = re.compile(r"^-?\d{1,3}(\.\d+)?,\s*-?\d{1,3}(\.\d+)?$")


class MessageKind(str, Enum):
    PLAIN = "plain"
    LOCATION = "location"

    def to_wire(self) -> str:
        """Value of the ``type`` field the chat endpoint expects."""
        return "Location" if self is MessageKind.LOCATION else ""


def classify_message(text: str) -> MessageKind:
    """Decide whether chat text is a shared location or plain text."""
    if LOCATION_PATTERN.match(text.strip()):
        return MessageKind.LOCATION
    return MessageKind.PLAIN


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Order(_WireModel):
    """One assigned order as returned by the orders endpoint."""

    id: int | str
    # Kept verbatim; the client never corrects a backend status.
    driver_status: str | None = None
    address: str | None = None
    customer_name: str | None = Field(default=None, alias="staff_name")
    time_slot: str | None = Field(default=None, alias="time_slot_value")
    phone: str | None = Field(default=None, alias="staff_phone")
    whatsapp: str | None = Field(default=None, alias="staff_whatsapp")
    latitude: str | float | None = None
    longitude: str | float | None = None


class ChatMessage(_WireModel):
    author: str = Field(default="", alias="user")
    text: str = ""
    created_at: str | None = None
    wire_type: str | None = Field(default=None, alias="type")

    @property
    def kind(self) -> MessageKind:
        """The sender's ``type`` when present, else derived from the text."""
        if self.wire_type is None:
            return classify_message(self.text)
        if self.wire_type == MessageKind.LOCATION.to_wire():
            return MessageKind.LOCATION
        return MessageKind.PLAIN

    @property
    def is_self(self) -> bool:
        return self.author == "self"

    def display_key(self, index: int) -> str:
        # Timestamps are not unique, so the position disambiguates.
        return f"{self.created_at}-{index}"


class Notification(_WireModel):
    id: int | str | None = None
    title: str = ""
    body: str = ""
    created_at: str | None = None


class OrdersResponse(_WireModel):
    # Required key; an explicit null means no orders.
    orders: list[Order] | None


class NotificationsResponse(_WireModel):
    notifications: list[Notification] | None


class MutationResult(_WireModel):
    """Business outcome of a mutation; independent of HTTP success."""

    success: bool = False


class OrderView(BaseModel):
    """What the order list renders for one row."""

    model_config = ConfigDict(frozen=True)

    order: Order
    busy: bool
    action_label: str | None

    @classmethod
    def build(cls, order: Order, busy: bool) -> "OrderView":
        action = next_action(order.driver_status)
        return cls(
            order=order,
            busy=busy,
            action_label=action.label if action is not None else None,
        )
