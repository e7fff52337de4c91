"""Sync engines for the three live views."""

from .chat import ChatSyncEngine
from .notifications import NotificationSyncEngine
from .orders import OrderSyncEngine

__all__ = ["ChatSyncEngine", "NotificationSyncEngine", "OrderSyncEngine"]
