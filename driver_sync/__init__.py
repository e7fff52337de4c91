"""Order-lifecycle and polling synchronization core for the delivery driver app."""

from .alerts import RecoverableErrorStream
from .engines import ChatSyncEngine, NotificationSyncEngine, OrderSyncEngine
from .polling import PollLoop, PollSubscription
from .runtime import DriverClient
from .session import DriverIdentity, SessionGate
from .status import DriverStatus, StatusAction, next_action

__all__ = [
    "ChatSyncEngine",
    "DriverClient",
    "DriverIdentity",
    "DriverStatus",
    "NotificationSyncEngine",
    "OrderSyncEngine",
    "PollLoop",
    "PollSubscription",
    "RecoverableErrorStream",
    "SessionGate",
    "StatusAction",
    "next_action",
]
