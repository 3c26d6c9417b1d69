"""End-to-end behaviour of a reader source driven through its entry points."""

import threading
import time

import pytest

from conftest import count, feed_url, sub

from reader_sync.core.actions import TAG_KEPT_UNREAD, TAG_READ, TAG_STARRED, TAG_TRACKING_KEPT_UNREAD
from reader_sync.core.auth import MAX_AUTH_FAILURES, LoginState
from reader_sync.core.errors import AuthExpired, AuthRejected, EditRejected, NetworkFailure
from reader_sync.core.source import ReaderSource, UpdateFlags


def sid(name: str) -> str:
    return f"feed/{feed_url(name)}"


def fail_logins(source, client, times=MAX_AUTH_FAILURES):
    client.login_results = [AuthRejected("bad credentials")] * times
    for _ in range(times):
        source.trigger_quick_update()
        source.process_pending()


class TestLoginScenario:
    """Login followed by full and quick updates."""

    def test_login_then_full_then_quick(self, source, client, tree, clock) -> None:
        client.subscription_list = [sub("a", 100), sub("b", 200)]
        client.counts = [count("a", 100), count("b", 200)]

        source.login()
        source.process_pending()

        assert source.login_state is LoginState.ACTIVE
        assert source.auth_failures == 0
        assert client.names()[:2] == ["login", "subscriptions"]
        assert source.timestamps == {sid("a"): 100, sid("b"): 200}

        tree.refreshed.clear()
        clock.advance(601)
        client.counts = [count("a", 100), count("b", 250)]

        assert source.trigger_quick_update() is True
        source.process_pending()

        assert tree.refreshed == [feed_url("b")]
        assert source.timestamps == {sid("a"): 100, sid("b"): 250}

    def test_authenticated_requests_use_token(self, source, client) -> None:
        source.login()
        source.process_pending()

        assert ("subscriptions", "GoogleLogin auth=token-1") in client.calls

    def test_only_login_skips_update(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        assert client.names() == ["login"]

    def test_only_list_skips_content(self, source, client, tree) -> None:
        client.subscription_list = [sub("a", 100)]

        source.login(UpdateFlags.ONLY_LIST)
        source.process_pending()

        assert "unread_counts" not in client.names()
        assert tree.refreshed == []

    def test_quick_trigger_logs_in_first(self, source, client) -> None:
        source.trigger_quick_update()
        source.process_pending()

        assert client.names() == ["login", "unread_counts"]

    def test_quick_update_within_interval_is_noop(self, source, client, clock) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        source.trigger_quick_update()
        source.process_pending()
        clock.advance(599)

        source.trigger_quick_update()
        source.process_pending()

        assert client.names().count("unread_counts") == 1


class TestAuthFailures:

    def test_three_rejections_stop_automatic_logins(self, source, client, tree) -> None:
        seen = []
        client.login_hook = lambda: seen.append(source.login_state)

        fail_logins(source, client)

        assert seen == [LoginState.IN_PROGRESS] * MAX_AUTH_FAILURES
        assert source.login_state is LoginState.NO_AUTH
        assert source.auth_failures == MAX_AUTH_FAILURES
        assert len(tree.errors) == 1

        source.trigger_quick_update()
        source.trigger_full_update()
        source.process_pending()

        assert client.names().count("login") == MAX_AUTH_FAILURES

    def test_manual_login_after_ceiling(self, source, client) -> None:
        fail_logins(source, client)

        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        assert source.login_state is LoginState.ACTIVE
        assert source.auth_failures == 0

    def test_expired_token_on_list_demotes(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        source.timestamps[sid("a")] = 10
        client.subscriptions_error = AuthExpired("401")

        source.trigger_full_update()
        source.process_pending()

        assert source.login_state is LoginState.NO_AUTH
        assert source.auth_failures == 1
        assert source.timestamps == {sid("a"): 10}

    def test_network_failure_reported_without_changes(self, source, client, tree) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        client.subscriptions_error = NetworkFailure("timeout")

        source.trigger_full_update()
        source.process_pending()

        assert source.login_state is LoginState.ACTIVE
        assert tree.nodes == {}
        assert any("timeout" in error for error in tree.errors)


class TestActionQueue:
    """Edits pushed through the source."""

    def test_dispatch_order_matches_enqueue_order(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        source.enqueue_tag_edit("i1", feed_url("a"), add_tag=TAG_READ)
        source.enqueue_unsubscribe(feed_url("b"))
        source.enqueue_tag_edit("i2", feed_url("a"), remove_tag=TAG_STARRED)
        source.enqueue_tag_edit("i3", feed_url("a"), add_tag=TAG_READ, remove_tag=TAG_KEPT_UNREAD)
        source.process_pending()

        assert [str(action) for action in client.edits()] == [
            f"edit-tag(i1, +{TAG_READ}, --)",
            f"unsubscribe({feed_url('b')})",
            f"edit-tag(i2, +-, -{TAG_STARRED})",
            f"edit-tag(i3, +{TAG_READ}, -{TAG_KEPT_UNREAD})",
        ]

    def test_concurrent_producers_keep_their_order(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        def produce(prefix):
            for i in range(20):
                source.enqueue_tag_edit(f"{prefix}-{i}", feed_url(prefix), add_tag=TAG_READ)

        threads = [threading.Thread(target=produce, args=(name,)) for name in ("x", "y", "z")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        source.process_pending()

        items = [action.item_id for action in client.edits()]
        assert len(items) == 60
        for prefix in ("x", "y", "z"):
            assert [i for i in items if i.startswith(prefix)] == [f"{prefix}-{i}" for i in range(20)]

    def test_enqueue_logs_in_before_sending(self, source, client) -> None:
        source.enqueue_subscribe(feed_url("a"))
        source.process_pending()

        assert client.names()[:3] == ["login", "edit_token", "edit"]

    def test_subscribe_schedules_list_update(self, source, client, tree) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        client.subscription_list = [sub("a", 100)]

        source.enqueue_subscribe(feed_url("a"))
        source.process_pending()

        assert client.names()[-2:] == ["edit", "subscriptions"]
        assert source.find_node_by_source(feed_url("a")) is tree.nodes[feed_url("a")]

    def test_subscribe_sent_by_quick_update_login_reaches_tree(self, source, client, tree) -> None:
        client.login_results = [AuthRejected("bad")]
        source.enqueue_subscribe(feed_url("new"))
        source.process_pending()
        assert len(source.actions) == 1
        client.subscription_list = [sub("new", 100)]

        source.trigger_quick_update()
        source.process_pending()

        assert [a.subscription_url for a in client.edits()] == [feed_url("new")]
        assert feed_url("new") in tree.nodes
        assert source.timestamps == {sid("new"): 100}

    def test_subscribe_refreshes_list_only_once(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        source.enqueue_subscribe(feed_url("a"))
        source.trigger_quick_update()
        source.process_pending()

        assert client.names().count("subscriptions") == 1

    def test_unsubscribe_removes_node(self, source, client, tree) -> None:
        client.subscription_list = [sub("a", 100)]
        source.login(UpdateFlags.ONLY_LIST)
        source.process_pending()

        source.enqueue_unsubscribe(feed_url("a"))
        source.process_pending()

        assert tree.nodes == {}
        assert source.timestamps == {}

    def test_rejected_edit_is_reported_and_dropped(self, source, client, tree) -> None:
        failed = []
        source.on_action_failed = lambda action, error: failed.append(action)
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        client.edit_results = [EditRejected("bad item")]

        source.enqueue_tag_edit("i1", feed_url("a"), add_tag=TAG_READ)
        source.enqueue_tag_edit("i2", feed_url("a"), add_tag=TAG_READ)
        source.process_pending()

        assert [a.item_id for a in client.edits()] == ["i1", "i2"]
        assert [a.item_id for a in failed] == ["i1"]
        assert len(source.actions) == 0
        assert any("bad item" in error for error in tree.errors)

    def test_queue_kept_at_ceiling_and_resumed_by_manual_login(self, source, client) -> None:
        fail_logins(source, client)

        source.enqueue_subscribe(feed_url("a"))
        source.process_pending()

        assert len(source.actions) == 1
        assert client.names().count("login") == MAX_AUTH_FAILURES

        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        assert [a.subscription_url for a in client.edits()] == [feed_url("a")]
        assert len(source.actions) == 0

    def test_expired_token_during_edit_keeps_action(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        client.edit_results = [AuthExpired("401")]

        source.enqueue_tag_edit("i1", feed_url("a"), add_tag=TAG_READ)
        source.process_pending()

        assert source.login_state is LoginState.NO_AUTH
        assert len(source.actions) == 1

        source.trigger_quick_update()
        source.process_pending()

        assert [a.item_id for a in client.edits()] == ["i1", "i1"]
        assert len(source.actions) == 0

    def test_mark_unread_sends_two_edits(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        source.mark_read("i1", feed_url("a"), read=False)
        source.process_pending()

        first, second = client.edits()
        assert (first.add_tag, first.remove_tag) == (TAG_KEPT_UNREAD, TAG_READ)
        assert second.add_tag == TAG_TRACKING_KEPT_UNREAD

    def test_mark_starred(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        source.mark_starred("i1", feed_url("a"))
        source.mark_starred("i1", feed_url("a"), starred=False)
        source.process_pending()

        assert [(a.add_tag, a.remove_tag) for a in client.edits()] == [
            (TAG_STARRED, None),
            (None, TAG_STARRED),
        ]


class TestCoalescing:

    def test_second_trigger_while_pending_is_ignored(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()

        assert source.trigger_full_update() is True
        assert source.trigger_full_update() is False
        source.process_pending()

        assert client.names().count("subscriptions") == 1

    def test_trigger_accepted_again_after_update(self, source, client) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        source.trigger_full_update()
        source.process_pending()

        assert source.trigger_full_update() is True


class TestMigrate:

    @pytest.mark.parametrize("prior", ["none", "active", "no_auth"])
    def test_all_entry_points_become_noops(self, source, client, prior) -> None:
        if prior == "active":
            source.login(UpdateFlags.ONLY_LOGIN)
            source.process_pending()
        elif prior == "no_auth":
            fail_logins(source, client)
        calls_before = list(client.calls)
        queued_before = len(source.actions)

        source.migrate()

        assert source.enqueue_subscribe(feed_url("a")) is True
        assert source.trigger_full_update() is True
        assert source.login() is True
        assert source.trigger_quick_update() is False
        assert source.process_pending() == 0
        assert len(source.actions) == queued_before
        assert client.calls == calls_before
        assert source.login_state is LoginState.MIGRATE

    def test_pending_messages_are_dropped(self, source, client) -> None:
        source.enqueue_subscribe(feed_url("a"))
        source.trigger_full_update()

        source.migrate()
        source.process_pending()

        assert client.calls == []

    def test_inflight_list_result_is_discarded(self, source, client, tree) -> None:
        source.login(UpdateFlags.ONLY_LOGIN)
        source.process_pending()
        client.subscription_list = [sub("a", 100)]
        original = client.subscriptions

        def migrate_during_request(auth_header):
            result = original(auth_header)
            source.migrate()
            return result

        client.subscriptions = migrate_during_request

        source.trigger_full_update()
        source.process_pending()

        assert tree.nodes == {}
        assert source.timestamps == {}


class TestPersistence:

    def test_snapshot_restores_into_new_source(self, source, client, tree, clock) -> None:
        source.restore({"token": "saved", "timestamps": {sid("a"): 100}, "last_quick_update": 5.0})
        assert source.login_state is LoginState.ACTIVE

        client.edit_results = [AuthExpired("401")]
        source.enqueue_subscribe(feed_url("b"))
        source.process_pending()
        snapshot = source.snapshot()

        restored = ReaderSource("copy", client, tree, "me@example.com", "secret", clock=clock)
        restored.restore(snapshot)

        assert not snapshot["token"]
        assert restored.login_state is LoginState.NONE
        assert restored.timestamps == {sid("a"): 100}
        assert [a.subscription_url for a in restored.actions.snapshot()] == [feed_url("b")]

    @pytest.mark.parametrize("trigger", ["full", "quick"])
    def test_restored_edits_sent_by_next_update(self, source, client, trigger) -> None:
        source.restore({
            "token": "saved",
            "last_quick_update": None,
            "pending_actions": [{"kind": "subscribe", "subscription_url": feed_url("a")}],
        })

        if trigger == "full":
            source.trigger_full_update()
        else:
            source.trigger_quick_update()
        source.process_pending()

        assert "login" not in client.names()
        assert [a.subscription_url for a in client.edits()] == [feed_url("a")]
        assert len(source.actions) == 0

    def test_restored_edits_sent_even_when_quick_update_not_due(self, source, client, clock) -> None:
        source.restore({
            "token": "saved",
            "last_quick_update": clock(),
            "pending_actions": [{"kind": "edit-tag", "subscription_url": feed_url("a"),
                                 "item_id": "i1", "add_tag": TAG_READ}],
        })

        source.trigger_quick_update()
        source.process_pending()

        assert [a.item_id for a in client.edits()] == ["i1"]
        assert "unread_counts" not in client.names()

    def test_request_snapshot_runs_on_consumer(self, source) -> None:
        received = []

        source.request_snapshot(received.append)
        source.process_pending()

        assert received[0]["pending_actions"] == []


class TestWorkerThread:

    def test_worker_handles_messages(self, source, client, tree) -> None:
        client.subscription_list = [sub("a", 100)]
        source.start()
        try:
            source.login(UpdateFlags.ONLY_LIST)
            deadline = time.monotonic() + 5
            while feed_url("a") not in tree.nodes and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            source.stop(timeout=5)

        assert source.login_state is LoginState.ACTIVE
        assert feed_url("a") in tree.nodes
