"""Tests for SyncQueue."""

import json
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import pytest
from PySide6.QtCore import QTimer
from pytestqt.qtbot import QtBot

from notask.core.environment import StaticEnvironment
from notask.core.preferences import MemoryPreferenceStore
from notask.core.sync_queue import FAILED_KEY, QUEUE_KEY, SyncItem, SyncQueue
from notask.models.save import SaveRequest


class FlakySave:
    """Save collaborator failing a set number of times before succeeding."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[str] = []

    def __call__(self, item_id: str, content: str, direction: str) -> None:
        self.calls.append(item_id)
        if self.failures:
            self.failures -= 1
            raise ConnectionError("server unreachable")


def make_queue(
    save: Any, online: bool = False, store: MemoryPreferenceStore | None = None
) -> SyncQueue:
    return SyncQueue(save, environment=StaticEnvironment(online=online), store=store)


class TestSyncItem:
    """Test queue item serialization."""

    def test_round_trip(self) -> None:
        """Test that to_dict output rebuilds the same item."""
        item = SyncItem("abc", SaveRequest("note-1", "text", "rtl"), 1234.0, attempts=1)
        assert SyncItem.from_dict(item.to_dict()) == item

    def test_exhausted(self) -> None:
        """Test the attempts limit."""
        item = SyncItem("abc", SaveRequest("note-1", "text"), 0.0, attempts=2, max_attempts=3)
        assert not item.exhausted
        item.attempts += 1
        assert item.exhausted

    def test_missing_fields(self) -> None:
        """Test that an entry without a request is rejected."""
        with pytest.raises(KeyError):
            SyncItem.from_dict({"id": "abc"})


class TestEnqueue:
    """Test queueing while offline."""

    def test_offline_holds_items(self, qapp: Any) -> None:
        """Test that nothing is sent while offline."""
        save = FlakySave()
        queue = make_queue(save)

        queue.enqueue(SaveRequest("note-1", "a"))
        queue.enqueue(SaveRequest("note-2", "b"))

        assert save.calls == []
        assert len(queue) == 2
        assert queue.process() == 0

    def test_latest_request_per_item(self, qapp: Any) -> None:
        """Test that a newer request replaces the queued one for the same item."""
        queue = make_queue(FlakySave())

        queue.enqueue(SaveRequest("note-1", "old"))
        queue.enqueue(SaveRequest("note-2", "other"))
        queue.enqueue(SaveRequest("note-1", "new"))

        assert [i.request for i in queue.items] == [
            SaveRequest("note-2", "other"),
            SaveRequest("note-1", "new"),
        ]

    def test_queue_changed_signal(self, qtbot: QtBot) -> None:
        """Test that enqueueing reports the new length."""
        queue = make_queue(FlakySave())
        with qtbot.wait_signal(queue.queue_changed, timeout=100) as blocker:
            queue.enqueue(SaveRequest("note-1", "a"))
        assert blocker.args == [1]

    def test_online_sends_immediately(self, qapp: Any) -> None:
        """Test that an online queue drains right away."""
        save = FlakySave()
        queue = make_queue(save, online=True)

        queue.enqueue(SaveRequest("note-1", "a"))

        assert save.calls == ["note-1"]
        assert len(queue) == 0


class TestProcess:
    """Test draining the queue."""

    def test_set_online_drains(self, qapp: Any) -> None:
        """Test that coming back online sends everything."""
        save = FlakySave()
        queue = make_queue(save)
        queue.enqueue(SaveRequest("note-1", "a"))
        queue.enqueue(SaveRequest("note-2", "b"))

        queue.set_online(True)

        assert save.calls == ["note-1", "note-2"]
        assert len(queue) == 0
        assert queue.status()["last_sync_time"] > 0

    def test_set_online_overrides_environment(self, qapp: Any) -> None:
        """Test that the forwarded state wins over the environment."""
        queue = make_queue(FlakySave(), online=True)
        queue.set_online(False)
        assert queue.is_online is False

    def test_retry_then_success(self, qapp: Any) -> None:
        """Test that an item stays queued after a failed attempt."""
        save = FlakySave(failures=1)
        queue = make_queue(save)
        queue.enqueue(SaveRequest("note-1", "a"))
        queue.set_online(True)

        assert len(queue) == 1
        assert queue.items[0].attempts == 1

        assert queue.process() == 1
        assert len(queue) == 0

    def test_max_attempts(self, qtbot: QtBot, caplog: pytest.LogCaptureFixture) -> None:
        """Test that an item moves to the failed list after three attempts."""
        save = FlakySave(failures=10)
        queue = make_queue(save)
        queue.enqueue(SaveRequest("note-1", "a"))
        queue.set_online(True)
        queue.process()

        with caplog.at_level(logging.ERROR), qtbot.wait_signal(queue.item_failed) as blocker:
            queue.process()

        assert blocker.args == ["note-1"]
        assert len(save.calls) == 3
        assert len(queue) == 0
        assert [i.request.item_id for i in queue.failed] == ["note-1"]
        assert "Max retry attempts reached" in caplog.text

        queue.clear_failed()
        assert queue.failed == []

    def test_future_results_awaited(self, qapp: Any) -> None:
        """Test that a returned future decides success."""
        outcomes: list[Future[None]] = []

        def save(item_id: str, content: str, direction: str) -> Future[None]:
            future: Future[None] = Future()
            if item_id == "bad":
                future.set_exception(ConnectionError("reset"))
            else:
                future.set_result(None)
            outcomes.append(future)
            return future

        queue = make_queue(save)
        queue.enqueue(SaveRequest("good", "a"))
        queue.enqueue(SaveRequest("bad", "b"))

        assert queue.process() == 0  # still offline
        queue.set_online(True)

        assert [i.request.item_id for i in queue.items] == ["bad"]
        assert len(outcomes) == 2

    def test_status(self, qapp: Any) -> None:
        """Test the status figures."""
        queue = make_queue(FlakySave())
        queue.enqueue(SaveRequest("note-1", "a"))
        assert queue.status() == {
            "is_online": False,
            "queue_length": 1,
            "failed": 0,
            "last_sync_time": 0.0,
        }


class DeferredSave:
    """Save collaborator returning an unresolved Future per call."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.futures: list[Future[None]] = []

    def __call__(self, item_id: str, content: str, direction: str) -> Future[None]:
        self.calls.append(item_id)
        future: Future[None] = Future()
        self.futures.append(future)
        return future


class TestAsyncProcess:
    """Test draining with saves that complete later."""

    def test_event_loop_completion(self, qtbot: QtBot) -> None:
        """Test that a future resolved by the event loop is not blocked on."""

        def save(item_id: str, content: str, direction: str) -> Future[None]:
            future: Future[None] = Future()
            QTimer.singleShot(0, lambda: future.set_result(None))
            return future

        queue = make_queue(save, online=True)
        with qtbot.wait_signal(queue.processed, timeout=1000) as blocker:
            queue.enqueue(SaveRequest("note-1", "a"))
            assert queue.is_processing
            assert len(queue) == 1

        assert blocker.args == [1]
        assert len(queue) == 0
        assert not queue.is_processing

    def test_timeout_counts_as_attempt(
        self, qtbot: QtBot, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a save that never completes fails the attempt."""
        save = DeferredSave()
        queue = SyncQueue(save, environment=StaticEnvironment(online=True), save_timeout_ms=20)

        with caplog.at_level(logging.WARNING):
            with qtbot.wait_signal(queue.processed, timeout=1000) as blocker:
                queue.enqueue(SaveRequest("note-1", "a"))

        assert blocker.args == [0]
        assert queue.items[0].attempts == 1
        assert "Sync timed out for note-1" in caplog.text

        # A late result is ignored, also while the item is being retried
        queue.process()
        assert save.calls == ["note-1", "note-1"]
        save.futures[0].set_result(None)
        assert queue.is_processing
        assert queue.items[0].attempts == 1

        save.futures[1].set_result(None)
        assert len(queue) == 0
        assert not queue.is_processing

    def test_items_saved_one_at_a_time(self, qtbot: QtBot) -> None:
        """Test that the next item starts only after the previous one settled."""
        save = DeferredSave()
        queue = make_queue(save)
        queue.enqueue(SaveRequest("note-1", "a"))
        queue.enqueue(SaveRequest("note-2", "b"))

        queue.set_online(True)
        assert save.calls == ["note-1"]

        save.futures[0].set_exception(ConnectionError("reset"))
        assert save.calls == ["note-1", "note-2"]
        assert queue.is_processing

        with qtbot.wait_signal(queue.processed, timeout=100) as blocker:
            save.futures[1].set_result(None)

        assert blocker.args == [1]
        assert [(i.request.item_id, i.attempts) for i in queue.items] == [("note-1", 1)]

    def test_enqueue_during_pass_waits(self, qtbot: QtBot) -> None:
        """Test that items queued during a pass are left for the next one."""
        save = DeferredSave()
        queue = make_queue(save, online=True)
        queue.enqueue(SaveRequest("note-1", "a"))
        queue.enqueue(SaveRequest("note-2", "b"))

        assert save.calls == ["note-1"]
        save.futures[0].set_result(None)
        assert not queue.is_processing
        assert [i.request.item_id for i in queue.items] == ["note-2"]

        queue.process()
        assert save.calls == ["note-1", "note-2"]
        save.futures[1].set_result(None)
        assert len(queue) == 0

    def test_worker_thread_completion(self, qtbot: QtBot) -> None:
        """Test that completion on a worker thread is handled on the queue's thread."""
        saved: list[str] = []

        def slow_save(item_id: str) -> None:
            time.sleep(0.05)
            saved.append(item_id)

        with ThreadPoolExecutor(max_workers=1) as pool:
            queue = make_queue(
                lambda item_id, content, direction: pool.submit(slow_save, item_id),
                online=True,
            )
            with qtbot.wait_signal(queue.processed, timeout=2000) as blocker:
                queue.enqueue(SaveRequest("note-1", "a"))

        assert blocker.args == [1]
        assert saved == ["note-1"]
        assert len(queue) == 0


class TestPersistence:
    """Test storing the queue."""

    def test_reload(self, qapp: Any) -> None:
        """Test that a new queue picks up stored items."""
        store = MemoryPreferenceStore()
        first = make_queue(FlakySave(), store=store)
        first.enqueue(SaveRequest("note-1", "a", "rtl"))

        second = make_queue(FlakySave(), store=store)
        assert [i.request for i in second.items] == [SaveRequest("note-1", "a", "rtl")]

    def test_failed_persisted(self, qapp: Any) -> None:
        """Test that failed items survive a reload."""
        store = MemoryPreferenceStore()
        queue = SyncQueue(
            FlakySave(failures=1),
            environment=StaticEnvironment(online=False),
            store=store,
            max_attempts=1,
        )
        queue.enqueue(SaveRequest("note-1", "a"))
        queue.set_online(True)

        assert len(json.loads(store.get(FAILED_KEY) or "[]")) == 1
        assert make_queue(FlakySave(), store=store).failed[0].request.item_id == "note-1"

    def test_corrupt_entries_skipped(self, qapp: Any, caplog: pytest.LogCaptureFixture) -> None:
        """Test that invalid stored entries are dropped with a warning."""
        good = SyncItem("ok", SaveRequest("note-1", "a"), 0.0).to_dict()
        store = MemoryPreferenceStore(
            {QUEUE_KEY: json.dumps([good, "junk", {"id": "no-request"}])}
        )

        with caplog.at_level(logging.WARNING):
            queue = make_queue(FlakySave(), store=store)

        assert [i.id for i in queue.items] == ["ok"]
        assert "Skipping invalid sync queue entry" in caplog.text

    def test_wrong_type_ignored(self, qapp: Any) -> None:
        """Test that a non-list value loads as an empty queue."""
        store = MemoryPreferenceStore({QUEUE_KEY: json.dumps({"not": "a list"})})
        assert make_queue(FlakySave(), store=store).items == []
