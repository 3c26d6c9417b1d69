"""Pytest fixtures for reader-sync tests."""

from typing import Any, Callable, Dict, List, Optional

import pytest

from reader_sync.core.nodes import FeedNode, FeedTree, normalize_source
from reader_sync.core.source import ReaderSource
from reader_sync.services.client import Subscription, UnreadCount


def feed_url(name: str) -> str:
    return f"http://{name}.example.com/rss"


def sub(name: str, timestamp: int = 0, title: Optional[str] = None) -> Subscription:
    url = feed_url(name)
    return Subscription(id=f"feed/{url}", url=url, title=title or name.upper(), timestamp=timestamp)


def count(name: str, timestamp: int, unread: int = 0) -> UnreadCount:
    return UnreadCount(id=f"feed/{feed_url(name)}", count=unread, timestamp=timestamp)


class MemoryTree(FeedTree):
    """Feed tree kept in a dict, recording what the core asked it to do."""

    def __init__(self, urls: Optional[List[str]] = None):
        self.nodes: Dict[str, FeedNode] = {}
        self.refreshed: List[str] = []
        self.errors: List[str] = []
        for url in urls or []:
            self.nodes[url] = FeedNode(source_url=url, title=url)

    def children(self) -> List[FeedNode]:
        return list(self.nodes.values())

    def add_subscription(self, source_url: str, title: str) -> FeedNode:
        node = FeedNode(source_url=normalize_source(source_url), title=title)
        self.nodes[node.source_url] = node
        return node

    def remove_node(self, node: FeedNode) -> None:
        self.nodes.pop(node.source_url, None)

    def refresh_node(self, node: FeedNode) -> None:
        self.refreshed.append(node.source_url)

    def report_error(self, message: str) -> None:
        self.errors.append(message)


class FakeClient:
    """Stands in for ReaderClient and records every request in order."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.login_results: List[Any] = []
        self.subscription_list: List[Subscription] = []
        self.counts: List[UnreadCount] = []
        self.subscriptions_error: Optional[Exception] = None
        self.counts_error: Optional[Exception] = None
        self.edit_results: List[Optional[Exception]] = []
        self.login_hook: Optional[Callable[[], None]] = None

    def login(self, email: str, password: str) -> str:
        self.calls.append(("login", email))
        if self.login_hook:
            self.login_hook()
        result = self.login_results.pop(0) if self.login_results else "token-1"
        if isinstance(result, Exception):
            raise result
        return result

    def subscriptions(self, auth_header: str) -> List[Subscription]:
        self.calls.append(("subscriptions", auth_header))
        if self.subscriptions_error:
            raise self.subscriptions_error
        return list(self.subscription_list)

    def unread_counts(self, auth_header: str) -> List[UnreadCount]:
        self.calls.append(("unread_counts", auth_header))
        if self.counts_error:
            raise self.counts_error
        return list(self.counts)

    def edit_token(self, auth_header: str) -> str:
        self.calls.append(("edit_token", auth_header))
        return "edit-token"

    def edit_subscription(self, auth_header, token, action) -> None:
        self._edit(action)

    def edit_tag(self, auth_header, token, action) -> None:
        self._edit(action)

    def _edit(self, action) -> None:
        self.calls.append(("edit", action))
        result = self.edit_results.pop(0) if self.edit_results else None
        if result is not None:
            raise result

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def edits(self) -> list:
        return [call[1] for call in self.calls if call[0] == "edit"]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reader_sync_home(tmp_path, monkeypatch):
    """Keep default data paths inside the test's temp dir."""
    home = tmp_path / "home"
    monkeypatch.setenv("READER_SYNC_HOME", str(home))
    return home


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def tree() -> MemoryTree:
    return MemoryTree()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source(client: FakeClient, tree: MemoryTree, clock: FakeClock) -> ReaderSource:
    return ReaderSource("test", client, tree, "me@example.com", "secret", clock=clock)
