"""Local feed tree persisted as JSON, with feed content refresh."""

import json
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import feedparser
import requests

from ..core.nodes import FeedNode, FeedTree, normalize_source
from ..utils.http import create_session
from ..utils.paths import get_project_dir, slugify


logger = logging.getLogger(__name__)


class FeedStore(FeedTree):
    """Subscription nodes of one account, stored in ``feeds-<account>.json``."""

    def __init__(
        self,
        account: str,
        data_dir: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> None:
        self.account = account
        self.data_dir = data_dir or get_project_dir()
        self.feeds_file = self.data_dir / f"feeds-{slugify(account)}.json"
        self.session = session or create_session()
        self.timeout = timeout
        self.errors: List[str] = []
        self._nodes: Dict[str, FeedNode] = {
            url: self._node_from_config(url, config) for url, config in self.load_feeds().items()
        }

    @staticmethod
    def _node_from_config(url: str, config: Dict[str, Any]) -> FeedNode:
        return FeedNode(
            source_url=url,
            title=config.get('title', ''),
            unread_count=config.get('unread_count', 0),
            metadata=config.get('metadata', {}),
        )

    def load_feeds(self) -> Dict[str, Any]:
        """
        Load feeds from storage.

        Returns:
            Dictionary of feed records keyed by URL
        """
        if not self.feeds_file.exists():
            return {}

        try:
            with open(self.feeds_file, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to load feeds of {self.account}: {e}")
            return {}

    def save_feeds(self) -> None:
        """Write all nodes to storage atomically."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        feeds = {
            url: {
                'title': node.title,
                'unread_count': node.unread_count,
                'metadata': node.metadata,
            }
            for url, node in self._nodes.items()
        }

        temp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                mode='w',
                encoding='utf-8',
                dir=self.data_dir,
                delete=False,
                suffix='.tmp'
            ) as temp_file:
                temp_path = Path(temp_file.name)
                json.dump(feeds, temp_file, indent=2, ensure_ascii=False)
                temp_file.flush()

            # Atomic move to final location
            temp_path.replace(self.feeds_file)

        except OSError as e:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise IOError(f"Failed to save feeds of {self.account}: {e}")

    def children(self) -> List[FeedNode]:
        return list(self._nodes.values())

    def add_subscription(self, source_url: str, title: str) -> FeedNode:
        url = normalize_source(source_url)
        node = self._nodes.get(url)
        if node is None:
            node = FeedNode(
                source_url=url,
                title=title or url,
                metadata={'added_at': datetime.now(timezone.utc).isoformat()},
            )
            self._nodes[url] = node
            self.save_feeds()
            logger.info(f"Added feed: {node.title} ({url})")
        return node

    def remove_node(self, node: FeedNode) -> None:
        if self._nodes.pop(normalize_source(node.source_url), None) is not None:
            self.save_feeds()
            logger.info(f"Removed feed: {node.title} ({node.source_url})")

    def set_unread_count(self, node: FeedNode, count: int) -> None:
        if node.unread_count != count:
            node.unread_count = count
            self.save_feeds()

    def refresh_node(self, node: FeedNode) -> None:
        """
        Fetch and parse a feed, recording the result in the node metadata.

        Failures are recorded on the node and do not propagate.

        Args:
            node: Node to refresh
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            logger.info(f"Fetching feed: {node.title or node.source_url}")
            response = self.session.get(node.source_url, timeout=self.timeout)
            response.raise_for_status()

            feed_data = feedparser.parse(response.content)
            if feed_data.bozo:
                logger.warning(f"Feed has parsing issues: {node.source_url}")

            node.metadata.update({
                'last_fetched': now,
                'last_error': None,
                'entry_count': len(feed_data.entries),
                'link': feed_data.feed.get('link', node.metadata.get('link', '')),
                'description': feed_data.feed.get('description', node.metadata.get('description', '')),
            })
            if not node.title:
                node.title = feed_data.feed.get('title', '')

        except requests.RequestException as e:
            logger.error(f"Failed to fetch feed {node.source_url}: {e}")
            node.metadata['last_error'] = str(e)

        self.save_feeds()

    def report_error(self, message: str) -> None:
        logger.error(message)
        self.errors.append(message)
        # Only the latest messages matter for status output
        del self.errors[:-20]
