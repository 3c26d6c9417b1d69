"""Pending remote edits and the ordered queue that sends them."""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from .errors import AuthExpired, EditRejected, NetworkFailure, ReaderSyncError
from .nodes import subscription_id


logger = logging.getLogger(__name__)

# Item states defined by the reader API
TAG_READ = "user/-/state/com.google/read"
TAG_KEPT_UNREAD = "user/-/state/com.google/kept-unread"
TAG_TRACKING_KEPT_UNREAD = "user/-/state/com.google/tracking-kept-unread"
TAG_STARRED = "user/-/state/com.google/starred"

# Stream that link pseudo-items belong to instead of a feed
LINK_STREAM = "user/-/source/com.google/link"


class ActionKind(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    EDIT_TAG = "edit-tag"


@dataclass(frozen=True)
class PendingAction:
    """One queued remote mutation.

    Tag additions, removals and combined add+remove edits share the
    ``EDIT_TAG`` kind; which fields are set decides the request shape.
    """

    kind: ActionKind
    subscription_url: str
    item_id: Optional[str] = None
    add_tag: Optional[str] = None
    remove_tag: Optional[str] = None
    link: bool = False

    def __post_init__(self) -> None:
        if not self.subscription_url and not self.link:
            raise ValueError("A subscription URL is required")
        if self.kind is ActionKind.EDIT_TAG:
            if not self.item_id:
                raise ValueError("Tag edits need an item id")
            if not self.add_tag and not self.remove_tag:
                raise ValueError("Tag edits need a tag to add or remove")

    @classmethod
    def subscribe(cls, url: str) -> "PendingAction":
        return cls(ActionKind.SUBSCRIBE, url)

    @classmethod
    def unsubscribe(cls, url: str) -> "PendingAction":
        return cls(ActionKind.UNSUBSCRIBE, url)

    @classmethod
    def edit_tag(
        cls,
        item_id: str,
        subscription_url: str,
        add_tag: Optional[str] = None,
        remove_tag: Optional[str] = None,
        link: bool = False,
    ) -> "PendingAction":
        return cls(
            ActionKind.EDIT_TAG,
            subscription_url,
            item_id=item_id,
            add_tag=add_tag,
            remove_tag=remove_tag,
            link=link,
        )

    @classmethod
    def mark_read(
        cls, item_id: str, subscription_url: str, read: bool = True, link: bool = False
    ) -> List["PendingAction"]:
        """Edits that flip the read state; marking unread also sets the tracking tag."""
        if read:
            return [cls.edit_tag(item_id, subscription_url, TAG_READ, TAG_KEPT_UNREAD, link)]
        return [
            cls.edit_tag(item_id, subscription_url, TAG_KEPT_UNREAD, TAG_READ, link),
            cls.edit_tag(item_id, subscription_url, add_tag=TAG_TRACKING_KEPT_UNREAD, link=link),
        ]

    @classmethod
    def mark_starred(cls, item_id: str, subscription_url: str, starred: bool = True) -> "PendingAction":
        if starred:
            return cls.edit_tag(item_id, subscription_url, add_tag=TAG_STARRED)
        return cls.edit_tag(item_id, subscription_url, remove_tag=TAG_STARRED)

    @property
    def is_subscription_edit(self) -> bool:
        return self.kind in (ActionKind.SUBSCRIBE, ActionKind.UNSUBSCRIBE)

    def to_request(self) -> Dict[str, str]:
        """
        Build the form fields for this edit, without the edit token.

        Returns:
            Dictionary of POST fields
        """
        if self.is_subscription_edit:
            return {
                "s": subscription_id(self.subscription_url),
                "i": "null",
                "ac": self.kind.value,
            }

        stream = LINK_STREAM if self.link else subscription_id(self.subscription_url)
        fields = {"i": self.item_id, "s": stream}
        if self.add_tag:
            fields["a"] = self.add_tag
        if self.remove_tag:
            fields["r"] = self.remove_tag
        fields["ac"] = "edit-tags"
        fields["async"] = "true"
        return fields

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value, "subscription_url": self.subscription_url}
        for key in ("item_id", "add_tag", "remove_tag"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.link:
            data["link"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingAction":
        return cls(
            ActionKind(data["kind"]),
            data.get("subscription_url", ""),
            item_id=data.get("item_id"),
            add_tag=data.get("add_tag"),
            remove_tag=data.get("remove_tag"),
            link=bool(data.get("link", False)),
        )

    def __str__(self) -> str:
        if self.is_subscription_edit:
            return f"{self.kind.value}({self.subscription_url})"
        return f"edit-tag({self.item_id}, +{self.add_tag or '-'}, -{self.remove_tag or '-'})"


class ActionQueue:
    """FIFO of pending edits, sent one at a time.

    Only the owning source's consumer touches the queue, so producers on
    other threads never race on its order.
    """

    def __init__(self, actions: Optional[List[PendingAction]] = None):
        self._pending: Deque[PendingAction] = deque(actions or [])
        self._in_flight = False

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def head(self) -> Optional[PendingAction]:
        return self._pending[0] if self._pending else None

    def enqueue(self, action: PendingAction) -> None:
        self._pending.append(action)
        logger.debug(f"Queued {action} ({len(self._pending)} pending)")

    def snapshot(self) -> List[PendingAction]:
        return list(self._pending)

    def dispatch_next(
        self,
        is_ready: Callable[[], bool],
        send: Callable[[PendingAction], None],
        on_error: Optional[Callable[[PendingAction, ReaderSyncError], None]] = None,
    ) -> bool:
        """
        Send the head of the queue.

        Args:
            is_ready: Returns True when the source may talk to the service;
                called before sending, may log in
            send: Performs the remote request for an action
            on_error: Called with actions that were dropped after a failure

        Returns:
            True if the head was consumed and the next one may be sent
        """
        if self._in_flight or not self._pending:
            return False

        if not is_ready():
            logger.debug(f"Not authenticated, keeping {self._pending[0]} queued")
            return False

        action = self._pending[0]
        self._in_flight = True
        try:
            send(action)
        except AuthExpired:
            logger.info(f"Token expired while sending {action}, will retry after login")
            return False
        except (EditRejected, NetworkFailure) as e:
            logger.error(f"Dropping {action}: {e}")
            self._pending.popleft()
            if on_error:
                on_error(action, e)
            return True
        finally:
            self._in_flight = False

        self._pending.popleft()
        logger.info(f"Sent {action}")
        return True

    def drain(
        self,
        is_ready: Callable[[], bool],
        send: Callable[[PendingAction], None],
        on_error: Optional[Callable[[PendingAction, ReaderSyncError], None]] = None,
    ) -> int:
        """Send queued actions in order until empty or blocked; return how many were consumed."""
        consumed = 0
        while self.dispatch_next(is_ready, send, on_error):
            consumed += 1
        return consumed
