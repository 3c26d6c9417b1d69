"""Local feed tree interface and the mapping from remote subscriptions to nodes."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)

FEED_PREFIX = "feed/"


def normalize_source(source: str) -> str:
    """Strip the remote ``feed/`` namespace so a remote id compares to a local URL."""
    value = (source or "").strip()
    if value.startswith(FEED_PREFIX):
        value = value[len(FEED_PREFIX):]
    return value


def subscription_id(url: str) -> str:
    """Remote subscription identifier for a feed URL."""
    return FEED_PREFIX + normalize_source(url)


@dataclass
class FeedNode:
    """A subscription node in the local feed tree."""

    source_url: str
    title: str = ""
    unread_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


class FeedTree(ABC):
    """Storage for the subscription nodes below one source's root.

    The sync core never edits nodes directly; it asks the tree to add,
    remove or refresh them.
    """

    @abstractmethod
    def children(self) -> List[FeedNode]:
        """Direct children of the source's root node."""

    @abstractmethod
    def add_subscription(self, source_url: str, title: str) -> FeedNode:
        """Create a node for a new remote subscription."""

    @abstractmethod
    def remove_node(self, node: FeedNode) -> None:
        """Remove a node whose subscription is gone remotely."""

    @abstractmethod
    def refresh_node(self, node: FeedNode) -> None:
        """Fetch new content for a node."""

    def set_unread_count(self, node: FeedNode, count: int) -> None:
        node.unread_count = count

    def report_error(self, message: str) -> None:
        logger.error(message)


class NodeMapper:
    """Resolves remote subscription sources to local nodes."""

    def __init__(self, tree: FeedTree):
        self.tree = tree
        self._index: Dict[str, FeedNode] = {}
        self.rebuild()

    def rebuild(self) -> None:
        self._index = {normalize_source(node.source_url): node for node in self.tree.children()}

    def bind(self, node: FeedNode) -> None:
        self._index[normalize_source(node.source_url)] = node

    def unbind(self, node: FeedNode) -> None:
        self._index.pop(normalize_source(node.source_url), None)

    def find_node_by_source(self, source: str) -> Optional[FeedNode]:
        """
        Find the child node for a feed source URL or remote subscription id.

        Args:
            source: Feed URL, with or without the remote ``feed/`` prefix

        Returns:
            The matching node, or None
        """
        key = normalize_source(source)
        if not key:
            return None

        node = self._index.get(key)
        if node is None:
            # The tree may have changed behind our back
            self.rebuild()
            node = self._index.get(key)
        return node

    def subscription_id_for(self, node: FeedNode) -> str:
        return subscription_id(node.source_url)
