"""Tests for the SecretCollector state synchronizer."""

import logging
import threading
import time
import pytest
from unittest.mock import MagicMock

from conftest import FakeSource
from pullsecret_eval.collector import DUPLICATE_ADDS, SecretCollector
from pullsecret_eval.errors import DuplicateAddError, SyncTimeoutError
from pullsecret_eval.models import EventKind, Secret, SecretEvent


def added(secret):
    return SecretEvent(EventKind.ADDED, secret)


def updated(secret):
    return SecretEvent(EventKind.UPDATED, secret)


def deleted(secret):
    return SecretEvent(EventKind.DELETED, secret)


def secret(uid, name="s", namespace="a", **kwargs):
    return Secret(uid=uid, namespace=namespace, name=name, **kwargs)


def collect(events, shutdown, **kwargs):
    """Run a collector over a fixed event list with shutdown already requested."""
    shutdown.set()
    source = FakeSource(events)
    snapshot = SecretCollector(poll_interval=0.01, **kwargs).run(source, shutdown)
    assert source.unsubscribe_calls == 1
    return snapshot


def test_update_after_add_overwrites(shutdown):
    """The last update wins for a secret added once."""
    events = [
        added(secret("1", annotations={"v": "0"})),
        updated(secret("1", annotations={"v": "1"})),
        updated(secret("1", annotations={"v": "2"})),
    ]

    snapshot = collect(events, shutdown)

    assert list(snapshot) == ["1"]
    assert snapshot["1"].annotations == {"v": "2"}


def test_update_without_add_inserts(shutdown):
    snapshot = collect([updated(secret("1"))], shutdown)
    assert "1" in snapshot


def test_add_after_delete_is_fresh_insert(shutdown, caplog):
    initial = DUPLICATE_ADDS._value.get()
    events = [
        added(secret("1", name="old")),
        deleted(secret("1", name="old")),
        added(secret("1", name="new")),
    ]

    with caplog.at_level(logging.WARNING):
        snapshot = collect(events, shutdown)

    assert snapshot["1"].name == "new"
    assert DUPLICATE_ADDS._value.get() == initial
    assert "already tracked" not in caplog.text


def test_delete_unknown_is_noop(shutdown):
    snapshot = collect([added(secret("1")), deleted(secret("2"))], shutdown)
    assert list(snapshot) == ["1"]


def test_delete_removes(shutdown):
    snapshot = collect([added(secret("1")), added(secret("2")), deleted(secret("1"))], shutdown)
    assert list(snapshot) == ["2"]


def test_duplicate_add_is_reported_and_collection_continues(shutdown, caplog):
    initial = DUPLICATE_ADDS._value.get()
    events = [added(secret("1", name="first")), added(secret("1", name="second"))]

    with caplog.at_level(logging.WARNING):
        snapshot = collect(events, shutdown)

    assert snapshot["1"].name == "second"
    assert DUPLICATE_ADDS._value.get() == initial + 1
    assert "already tracked" in caplog.text


def test_duplicate_add_fatal_when_configured(shutdown):
    source = FakeSource([added(secret("1", name="first")), added(secret("1", name="second"))])
    collector = SecretCollector(duplicate_add_fatal=True, poll_interval=0.01)

    with pytest.raises(DuplicateAddError) as exc_info:
        collector.run(source, shutdown)

    assert exc_info.value.uid == "1"
    assert source.unsubscribe_calls == 1


def test_first_error_wins(shutdown):
    source = FakeSource(errors=[RuntimeError("first"), RuntimeError("second")])
    collector = SecretCollector(poll_interval=0.01)

    with pytest.raises(RuntimeError, match="first"):
        collector.run(source, shutdown)

    assert source.unsubscribe_calls == 1


def test_pending_error_wins_over_shutdown(shutdown):
    shutdown.set()
    source = FakeSource([added(secret("1"))], errors=[RuntimeError("watch failed")])

    with pytest.raises(RuntimeError, match="watch failed"):
        SecretCollector(poll_interval=0.01).run(source, shutdown)


class LastEventOnUnsubscribeSource(FakeSource):
    """Finishes one in-flight delivery while unsubscribing."""

    def __init__(self, last_event, **kwargs):
        super().__init__(**kwargs)
        self.last_event = last_event

    def unsubscribe(self):
        self.on_event(self.last_event)
        super().unsubscribe()


def test_error_from_callback_finished_during_unsubscribe(shutdown):
    """A fatal error raised by the last in-flight event still aborts the run."""
    shutdown.set()
    source = LastEventOnUnsubscribeSource(
        added(secret("1", name="second")), initial=[added(secret("1", name="first"))])
    collector = SecretCollector(duplicate_add_fatal=True, poll_interval=0.01)

    with pytest.raises(DuplicateAddError):
        collector.run(source, shutdown)

    assert source.unsubscribe_calls == 1


class ThreadedSource(FakeSource):
    """Keeps delivering events from a background thread until unsubscribed."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.delivered = 0
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._thread = None

    def subscribe(self, on_event, on_error):
        super().subscribe(on_event, on_error)
        self._thread = threading.Thread(target=self._deliver, daemon=True)
        self._thread.start()

    def _deliver(self):
        uid = 0
        while True:
            with self._lock:
                if self._stopped.is_set():
                    return
                self.on_event(added(secret(str(uid))))
                self.delivered += 1
            uid += 1
            time.sleep(0.001)

    def unsubscribe(self):
        with self._lock:
            self._stopped.set()
        self._thread.join(2)
        super().unsubscribe()


def test_shutdown_while_source_is_delivering(shutdown):
    source = ThreadedSource()
    collector = SecretCollector(poll_interval=0.01)

    timer = threading.Timer(0.1, shutdown.set)
    timer.start()
    try:
        snapshot = collector.run(source, shutdown)
    finally:
        timer.cancel()

    assert source.delivered > 0
    assert len(snapshot) == source.delivered
    # Nothing is delivered after the snapshot was taken.
    time.sleep(0.02)
    assert len(snapshot) == source.delivered


def test_error_before_initial_sync_is_raised_without_waiting(shutdown):
    source = FakeSource(sync=False, errors=[RuntimeError("list failed")])
    collector = SecretCollector(initial_sync_timeout=30, poll_interval=0.01)

    with pytest.raises(RuntimeError, match="list failed"):
        collector.run(source, shutdown)

    assert source.unsubscribe_calls == 1


def test_initial_sync_timeout(shutdown):
    source = FakeSource(sync=False)
    collector = SecretCollector(initial_sync_timeout=0.05, poll_interval=0.01)

    with pytest.raises(SyncTimeoutError):
        collector.run(source, shutdown)

    assert source.unsubscribe_calls == 1


def test_shutdown_during_initial_sync_returns_partial_snapshot(shutdown):
    shutdown.set()
    source = FakeSource([added(secret("1"))], sync=False)
    collector = SecretCollector(initial_sync_timeout=30, poll_interval=0.01)

    snapshot = collector.run(source, shutdown)

    assert list(snapshot) == ["1"]
    assert source.unsubscribe_calls == 1


def test_shutdown_from_another_thread(shutdown):
    source = FakeSource([added(secret("1"))])
    collector = SecretCollector(poll_interval=0.01)

    timer = threading.Timer(0.1, shutdown.set)
    timer.start()
    try:
        snapshot = collector.run(source, shutdown)
    finally:
        timer.cancel()

    assert list(snapshot) == ["1"]
    assert source.unsubscribe_calls == 1


def test_snapshot_is_read_only_and_detached(shutdown):
    source = FakeSource([added(secret("1"))])
    shutdown.set()
    collector = SecretCollector(poll_interval=0.01)

    snapshot = collector.run(source, shutdown)

    with pytest.raises(TypeError):
        snapshot["2"] = secret("2")

    # Late deliveries do not reach an already returned snapshot.
    collector.handle_event(added(secret("3")))
    assert list(snapshot) == ["1"]


def test_progress_callback(shutdown):
    counts = []
    events = [added(secret("1")), added(secret("2")), deleted(secret("1"))]

    collect(events, shutdown, on_progress=counts.append)

    assert counts == [1, 2, 1]


def test_unknown_event_kind():
    collector = SecretCollector()
    event = MagicMock()
    event.kind.value = "BOOKMARK"

    with pytest.raises(ValueError):
        collector.handle_event(event)
