"""One configured reader account and the worker that owns its state."""

import logging
import queue
import threading
import time
from enum import IntFlag
from typing import Any, Callable, Dict, Optional

from .actions import ActionKind, ActionQueue, PendingAction
from .auth import Authenticator, LoginState
from .credentials import CredentialStore
from .errors import AuthExpired, MigrationInProgress, NetworkFailure, ReaderSyncError
from .nodes import FeedNode, FeedTree, NodeMapper
from .sync import SyncEngine


logger = logging.getLogger(__name__)


class UpdateFlags(IntFlag):
    NONE = 0
    # Update only the subscription list, not the feeds underneath it
    ONLY_LIST = 1 << 16
    # Log in without any follow-up update
    ONLY_LOGIN = 1 << 17
    # Follow a login with a quick update instead of a full one
    QUICK = 1 << 18


class ReaderSource:
    """
    Synchronizes the subtree of one reader account with the remote service.

    Entry points may be called from any thread. They only post a message to
    the source's inbox; a single consumer (the worker thread started by
    ``start()``, or ``process_pending()`` when driven inline) performs the
    network requests and owns the action queue, failure counter and
    timestamp map. Login state and the pending-update flag are shared with
    callers and guarded by one lock.
    """

    def __init__(
        self,
        name: str,
        client,
        tree: FeedTree,
        email: str,
        password: str,
        clock: Callable[[], float] = time.time,
        on_action_failed: Optional[Callable[[PendingAction, ReaderSyncError], None]] = None,
    ):
        self.name = name
        self.client = client
        self.tree = tree
        self.credentials = CredentialStore()
        self._lock = threading.RLock()
        self.auth = Authenticator(
            client,
            self.credentials,
            email,
            password,
            lock=self._lock,
            report_error=tree.report_error,
        )
        self.mapper = NodeMapper(tree)
        self.sync = SyncEngine(client, tree, self.mapper, clock=clock, cancelled=lambda: self.auth.migrated)
        self.actions = ActionQueue()
        self.on_action_failed = on_action_failed

        self._inbox: "queue.Queue" = queue.Queue()
        self._update_pending = False
        # Set by a sent subscribe; cleared once the list has been fetched
        self._list_refresh_needed = False
        self._worker: Optional[threading.Thread] = None

    # -- state ---------------------------------------------------------

    @property
    def login_state(self) -> LoginState:
        return self.auth.state

    @property
    def auth_failures(self) -> int:
        return self.auth.failures

    @property
    def timestamps(self) -> Dict[str, int]:
        return self.sync.timestamps

    def migrate(self) -> None:
        """Mark the source as decommissioned; everything after this is a no-op."""
        with self._lock:
            self.auth.migrate()
            dropped = 0
            while True:
                try:
                    self._inbox.get_nowait()
                except queue.Empty:
                    break
                dropped += 1
        if dropped:
            logger.debug(f"Dropped {dropped} pending messages for {self.name}")

    # -- entry points --------------------------------------------------

    def login(self, flags: UpdateFlags = UpdateFlags.NONE) -> bool:
        """User-triggered login, allowed even after repeated failures."""
        return self._post(self._handle_login, UpdateFlags(flags), True)

    def trigger_full_update(self, flags: UpdateFlags = UpdateFlags.NONE) -> bool:
        return self._post_update(self._handle_full_update, UpdateFlags(flags))

    def trigger_quick_update(self) -> bool:
        """
        Request a quick update; meant to be called periodically.

        Returns:
            False once the source is migrated and should not be scheduled anymore
        """
        if self.auth.migrated:
            return False
        self._post_update(self._handle_quick_update)
        return True

    def enqueue_subscribe(self, url: str) -> bool:
        return self._enqueue(PendingAction.subscribe(url))

    def enqueue_unsubscribe(self, url: str) -> bool:
        return self._enqueue(PendingAction.unsubscribe(url))

    def enqueue_tag_edit(
        self,
        item_id: str,
        subscription_url: str,
        add_tag: Optional[str] = None,
        remove_tag: Optional[str] = None,
        link: bool = False,
    ) -> bool:
        return self._enqueue(PendingAction.edit_tag(item_id, subscription_url, add_tag, remove_tag, link))

    def mark_read(self, item_id: str, subscription_url: str, read: bool = True, link: bool = False) -> bool:
        return all([self._enqueue(a) for a in PendingAction.mark_read(item_id, subscription_url, read, link)])

    def mark_starred(self, item_id: str, subscription_url: str, starred: bool = True) -> bool:
        return self._enqueue(PendingAction.mark_starred(item_id, subscription_url, starred))

    def find_node_by_source(self, url: str) -> Optional[FeedNode]:
        return self.mapper.find_node_by_source(url)

    def request_snapshot(self, callback: Callable[[Dict[str, Any]], None]) -> bool:
        """Have the consumer hand a snapshot of its state to ``callback``."""
        return self._post(lambda: callback(self.snapshot()))

    # -- persistence ---------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """State worth saving between runs. Call from the consumer or while stopped."""
        return {
            "token": self.credentials.token,
            "timestamps": dict(self.sync.timestamps),
            "last_quick_update": self.sync.last_quick_update,
            "pending_actions": [action.to_dict() for action in self.actions.snapshot()],
        }

    def restore(self, data: Optional[Dict[str, Any]]) -> None:
        """Load a snapshot taken by ``snapshot()``. Call before starting the worker."""
        if not data:
            return

        if data.get("token"):
            self.credentials.set_token(data["token"])
            self.auth.resume()

        self.sync.timestamps = {str(k): int(v) for k, v in (data.get("timestamps") or {}).items()}
        self.sync.last_quick_update = data.get("last_quick_update")

        for item in data.get("pending_actions") or []:
            try:
                self.actions.enqueue(PendingAction.from_dict(item))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable saved action {item}: {e}")

        logger.debug(
            f"Restored {self.name}: {len(self.sync.timestamps)} timestamps, "
            f"{len(self.actions)} pending actions"
        )

    # -- consumer ------------------------------------------------------

    def start(self) -> None:
        if self._worker and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run, name=f"reader-source-{self.name}", daemon=True)
        self._worker.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if not self._worker:
            return
        self._inbox.put(None)
        self._worker.join(timeout)
        self._worker = None

    def process_pending(self) -> int:
        """
        Handle queued messages on the calling thread.

        Do not mix with a running worker.

        Returns:
            Number of messages handled
        """
        handled = 0
        while True:
            try:
                message = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            if message is not None:
                self._handle(message)
                handled += 1

    def _run(self) -> None:
        logger.debug(f"Worker for {self.name} started")
        while True:
            message = self._inbox.get()
            if message is None:
                break
            self._handle(message)
        logger.debug(f"Worker for {self.name} stopped")

    def _post(self, handler: Callable, *args) -> bool:
        """Queue a message; a migrated source accepts and drops it."""
        with self._lock:
            if self.auth.migrated:
                logger.debug(f"Ignoring request for migrated source {self.name}")
                return True
            self._inbox.put((handler, args))
        return True

    def _post_update(self, handler: Callable, *args) -> bool:
        with self._lock:
            if self.auth.migrated:
                return True
            if self._update_pending:
                logger.debug(f"Update for {self.name} already pending, trigger ignored")
                return False
            self._update_pending = True
            self._inbox.put((self._run_update, (handler,) + args))
        return True

    def _run_update(self, handler: Callable, *args) -> None:
        try:
            handler(*args)
        finally:
            with self._lock:
                self._update_pending = False

    def _handle(self, message) -> None:
        handler, args = message
        if self.auth.migrated:
            return
        try:
            handler(*args)
            self._refresh_list_if_needed()
        except MigrationInProgress:
            logger.debug(f"Stopped work for {self.name}: source migrated")
        except Exception:
            logger.exception(f"Unexpected error in reader source {self.name}")

    # -- handlers (consumer only) --------------------------------------

    def _handle_login(self, flags: UpdateFlags, manual: bool) -> None:
        if not self.auth.login(manual=manual):
            return

        self._drain_actions()
        if flags & UpdateFlags.ONLY_LOGIN:
            return
        if flags & UpdateFlags.QUICK:
            self._quick_update()
        else:
            self._full_update(flags)

    def _handle_full_update(self, flags: UpdateFlags) -> None:
        if not self.auth.is_active:
            self._handle_login(flags & ~UpdateFlags.QUICK, manual=False)
            return
        self._drain_actions()
        if self.auth.is_active:
            self._full_update(flags)

    def _handle_quick_update(self) -> None:
        # Edits restored with a saved token have no login to flush them
        if self.auth.is_active:
            self._drain_actions()
        if not self.sync.quick_update_due():
            logger.debug(f"Quick update for {self.name} not due yet")
            return
        if not self.auth.is_active:
            self._handle_login(UpdateFlags.QUICK, manual=False)
            return
        self._quick_update()

    def _full_update(self, flags: UpdateFlags) -> None:
        only_list = bool(flags & UpdateFlags.ONLY_LIST)
        logger.info(f"Full update of {self.name}{' (list only)' if only_list else ''}")
        try:
            self.sync.full_update(self.credentials.get_auth_header(), only_list=only_list)
            self._list_refresh_needed = False
        except AuthExpired:
            self.auth.auth_expired()
        except NetworkFailure as e:
            self.tree.report_error(f"Updating subscriptions of {self.name} failed: {e}")

    def _quick_update(self) -> None:
        try:
            self.sync.quick_update(self.credentials.get_auth_header())
        except AuthExpired:
            self.auth.auth_expired()
        except NetworkFailure as e:
            self.tree.report_error(f"Quick update of {self.name} failed: {e}")

    def _enqueue(self, action: PendingAction) -> bool:
        return self._post(self._handle_enqueue, action)

    def _handle_enqueue(self, action: PendingAction) -> None:
        self.actions.enqueue(action)
        self._drain_actions()

    def _drain_actions(self) -> None:
        self.actions.drain(self._ready_for_edit, self._send_action, self._action_failed)

    def _ready_for_edit(self) -> bool:
        if self.auth.migrated:
            raise MigrationInProgress(self.name)
        if self.auth.is_active:
            return True
        return self.auth.login(manual=False)

    def _send_action(self, action: PendingAction) -> None:
        header = self.credentials.get_auth_header()
        try:
            token = self.client.edit_token(header)
            if self.auth.migrated:
                raise MigrationInProgress(self.name)
            if action.is_subscription_edit:
                self.client.edit_subscription(header, token, action)
            else:
                self.client.edit_tag(header, token, action)
        except AuthExpired:
            self.auth.auth_expired()
            raise

        if self.auth.migrated:
            return
        if action.kind is ActionKind.SUBSCRIBE:
            self._list_refresh_needed = True
        elif action.kind is ActionKind.UNSUBSCRIBE:
            self._forget_subscription(action.subscription_url)

    def _refresh_list_if_needed(self) -> None:
        """Pull a new subscription into the tree once the current message is done."""
        if self._list_refresh_needed and self.auth.is_active:
            self._full_update(UpdateFlags.ONLY_LIST)

    def _forget_subscription(self, url: str) -> None:
        self.sync.forget(url)
        node = self.mapper.find_node_by_source(url)
        if node is not None:
            self.mapper.unbind(node)
            self.tree.remove_node(node)

    def _action_failed(self, action: PendingAction, error: ReaderSyncError) -> None:
        self.tree.report_error(f"Could not {action}: {error}")
        if self.on_action_failed:
            self.on_action_failed(action, error)

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "login_state": self.login_state.value,
            "auth_failures": self.auth_failures,
            "pending_actions": len(self.actions),
            "subscriptions": len(self.sync.timestamps),
            "last_quick_update": self.sync.last_quick_update,
        }
