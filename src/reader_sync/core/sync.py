"""Full and quick synchronization of the subscription list."""

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Set

from .nodes import FeedNode, FeedTree, NodeMapper, normalize_source, subscription_id


logger = logging.getLogger(__name__)

# Minimum number of seconds between two quick updates
QUICK_UPDATE_INTERVAL = 600


class SyncEngine:
    """Reconciles the local tree with the remote subscription list.

    Keeps the last remote update timestamp of every subscription so quick
    updates only refresh feeds that changed. Auth and network errors from
    the client propagate before any local state is touched.
    """

    def __init__(
        self,
        client,
        tree: FeedTree,
        mapper: NodeMapper,
        clock: Callable[[], float] = time.time,
        cancelled: Optional[Callable[[], bool]] = None,
        quick_update_interval: int = QUICK_UPDATE_INTERVAL,
    ):
        self.client = client
        self.tree = tree
        self.mapper = mapper
        self.clock = clock
        self.cancelled = cancelled or (lambda: False)
        self.quick_update_interval = quick_update_interval
        self.timestamps: Dict[str, int] = {}
        self.last_quick_update: Optional[float] = None

    def quick_update_due(self) -> bool:
        if self.last_quick_update is None:
            return True
        return self.clock() - self.last_quick_update >= self.quick_update_interval

    def forget(self, source: str) -> None:
        self.timestamps.pop(subscription_id(source), None)

    def full_update(self, auth_header: str, only_list: bool = False) -> bool:
        """
        Fetch the subscription list and reconcile the local tree with it.

        Args:
            auth_header: Authorization header value
            only_list: Skip unread counts and content refresh

        Returns:
            False if the result was discarded
        """
        subscriptions = self.client.subscriptions(auth_header)
        if self.cancelled():
            logger.debug("Discarding subscription list after migration")
            return False

        logger.info(f"Subscription list has {len(subscriptions)} entries")
        self.mapper.rebuild()

        remote_ids: Set[str] = set()
        timestamps: Dict[str, int] = {}
        for subscription in subscriptions:
            sub_id = subscription_id(subscription.id)
            if sub_id in remote_ids:
                continue
            remote_ids.add(sub_id)

            node = self.mapper.find_node_by_source(sub_id)
            if node is None:
                logger.info(f"New subscription: {subscription.title or subscription.url}")
                node = self.tree.add_subscription(subscription.url, subscription.title)
                self.mapper.bind(node)

            if subscription.timestamp:
                timestamps[sub_id] = subscription.timestamp
            else:
                timestamps[sub_id] = self.timestamps.get(sub_id, 0)

        for node in list(self.tree.children()):
            if self.mapper.subscription_id_for(node) not in remote_ids:
                logger.info(f"Subscription removed remotely: {node.source_url}")
                self.mapper.unbind(node)
                self.tree.remove_node(node)

        self.timestamps = timestamps

        if not only_list:
            counts = self.client.unread_counts(auth_header)
            if self.cancelled():
                return False
            self._apply_counts(counts)
            for node in self.tree.children():
                self.tree.refresh_node(node)

        self.last_quick_update = self.clock()
        return True

    def quick_update(self, auth_header: str) -> List[FeedNode]:
        """
        Refresh only the subscriptions whose remote timestamp advanced.

        Args:
            auth_header: Authorization header value

        Returns:
            Nodes that were refreshed; empty when throttled
        """
        if not self.quick_update_due():
            logger.debug("Quick update skipped, last one was less than "
                         f"{self.quick_update_interval}s ago")
            return []

        counts = self.client.unread_counts(auth_header)
        if self.cancelled():
            logger.debug("Discarding unread counts after migration")
            return []

        changed = self._apply_counts(counts)
        for node in changed:
            self.tree.refresh_node(node)

        self.last_quick_update = self.clock()
        logger.info(f"Quick update refreshed {len(changed)} of {len(self.timestamps)} subscriptions")
        return changed

    def _apply_counts(self, counts: Iterable) -> List[FeedNode]:
        """Update unread counts and timestamps; return nodes with a newer remote timestamp."""
        changed: List[FeedNode] = []
        for count in counts:
            sub_id = subscription_id(count.id)
            if sub_id not in self.timestamps:
                # Labels, states and subscriptions the next full update will pick up
                continue

            node = self.mapper.find_node_by_source(sub_id)
            if node is None:
                continue

            self.tree.set_unread_count(node, count.count)
            if count.timestamp > self.timestamps[sub_id]:
                logger.debug(f"{normalize_source(sub_id)} updated at {count.timestamp}")
                self.timestamps[sub_id] = count.timestamp
                changed.append(node)
        return changed
