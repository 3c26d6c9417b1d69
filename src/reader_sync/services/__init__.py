"""Service layer for reader-sync."""

from .client import ReaderClient, Subscription, UnreadCount
from .feed_store import FeedStore
from .state import StateManager

__all__ = ["ReaderClient", "Subscription", "UnreadCount", "FeedStore", "StateManager"]
