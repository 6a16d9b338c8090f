"""Retry queue for content saves that failed.

When an auto-save fails (typically while offline), the request is put
on this queue. The queue is retried when connectivity returns; each
item gets a fixed number of attempts before it is moved to the failed
list and reported via ``item_failed``.

Usage:
    queue = SyncQueue(api.save_content, store=SettingsPreferenceStore())
    queue.item_failed.connect(show_sync_error)
    queue.enqueue(SaveRequest("item-1", content))
    queue.set_online(True)  # forward reachability changes
"""

import logging
import time
import uuid
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

from PySide6.QtCore import QObject, QTimer, Signal

from notask.core.environment import EnvironmentProvider, QtEnvironment
from notask.core.preferences import PreferenceStore, load_json, save_json
from notask.models.save import SaveRequest

logger = logging.getLogger(__name__)

QUEUE_KEY = "syncQueue/queue"
FAILED_KEY = "syncQueue/failed"

DEFAULT_MAX_ATTEMPTS = 3
# Upper bound for waiting on an asynchronous save while draining (ms)
SAVE_TIMEOUT_MS = 10_000


@dataclass
class SyncItem:
    """A queued save request and its retry bookkeeping."""

    id: str
    request: SaveRequest
    timestamp: float
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    @property
    def exhausted(self) -> bool:
        """Return True once no attempts are left."""
        return self.attempts >= self.max_attempts

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "request": self.request.to_dict(),
            "timestamp": self.timestamp,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncItem":
        """Build an item from ``to_dict`` output.

        Raises:
            KeyError: If required fields are missing.
            TypeError, ValueError: If fields have the wrong type.
        """
        return cls(
            id=str(data["id"]),
            request=SaveRequest.from_dict(data["request"]),
            timestamp=float(data.get("timestamp", 0.0)),
            attempts=int(data.get("attempts", 0)),
            max_attempts=int(data.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
        )


def _load_items(store: PreferenceStore | None, key: str) -> list[SyncItem]:
    raw = load_json(store, key, [])
    if not isinstance(raw, list):
        logger.warning("Ignoring stored %s of type %s", key, type(raw).__name__)
        return []
    items: list[SyncItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            items.append(SyncItem.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid sync queue entry: %s", e)
    return items


class SyncQueue(QObject):
    """Persistent queue of failed saves, retried while online.

    Items are retried one at a time. A save that returns a
    ``concurrent.futures.Future`` is awaited through the event loop, so
    draining never blocks the thread the queue lives on.

    Signals:
        queue_changed: Emitted with the queue length after it changes.
        item_failed: Emitted with the item ID when an item runs out of attempts.
        processed: Emitted with the number of saved items when a pass ends.
    """

    queue_changed = Signal(int)
    item_failed = Signal(str)
    processed = Signal(int)
    _save_done = Signal(object, object)  # (SyncItem, Future); queued across threads

    def __init__(  # noqa: PLR0913
        self,
        save_fn: Callable[[str, str, str], Any],
        *,
        environment: EnvironmentProvider | None = None,
        store: PreferenceStore | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        save_timeout_ms: int = SAVE_TIMEOUT_MS,
        parent: QObject | None = None,
    ) -> None:
        """Initialize the queue and load persisted items.

        Args:
            save_fn: Save collaborator ``save_fn(item_id, content, direction)``;
                may return a ``concurrent.futures.Future``.
            environment: Source of online state; defaults to QtEnvironment.
            store: Store for persisting the queue, or None for memory only.
            max_attempts: Attempts per item before it is marked failed.
            save_timeout_ms: How long to wait for an asynchronous save.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._save_fn = save_fn
        self._environment: EnvironmentProvider = (
            environment if environment is not None else QtEnvironment()
        )
        self._store = store
        self._max_attempts = max_attempts
        self._online: bool | None = None
        self._last_sync_time: float = 0.0
        self._items = _load_items(store, QUEUE_KEY)
        self._failed = _load_items(store, FAILED_KEY)
        if self._items:
            logger.info("Loaded %d sync items from storage", len(self._items))

        # State of the running pass
        self._processing = False
        self._batch: list[SyncItem] = []
        self._awaiting: SyncItem | None = None
        self._awaiting_future: Future[Any] | None = None
        self._saved = 0

        self._timeout = QTimer(self)
        self._timeout.setSingleShot(True)
        self._timeout.setInterval(save_timeout_ms)
        self._timeout.timeout.connect(self._on_timeout)
        self._save_done.connect(self._on_save_done)

    @property
    def items(self) -> list[SyncItem]:
        """Return a copy of queued items in order."""
        return list(self._items)

    @property
    def failed(self) -> list[SyncItem]:
        """Return items that ran out of attempts."""
        return list(self._failed)

    @property
    def is_online(self) -> bool:
        """Return the forwarded online state, or ask the environment."""
        if self._online is not None:
            return self._online
        return self._environment.is_online()

    @property
    def is_processing(self) -> bool:
        """Return True while a pass over the queue is running."""
        return self._processing

    def __len__(self) -> int:
        return len(self._items)

    def set_online(self, online: bool) -> None:
        """Record a reachability change; going online drains the queue."""
        was_online = self.is_online
        self._online = online
        if online and not was_online:
            logger.info("Back online, processing %d queued saves", len(self._items))
        if online:
            self.process()

    def enqueue(self, request: SaveRequest) -> str:
        """Queue a request, replacing any queued request for the same item.

        Returns:
            ID of the queued item.
        """
        item = SyncItem(
            id=uuid.uuid4().hex,
            request=request,
            timestamp=time.time() * 1000,
            max_attempts=self._max_attempts,
        )
        self._items = [i for i in self._items if i.request.item_id != request.item_id]
        self._items.append(item)
        logger.debug("Queued save for %s (%d queued)", request.item_id, len(self._items))
        self._persist()
        self.queue_changed.emit(len(self._items))

        if self.is_online:
            self.process()
        return item.id

    def process(self) -> int:
        """Start a pass that tries every queued item once.

        Does nothing while offline or while a pass is already running.
        Items queued during a pass wait for the next one.

        Returns:
            Number of items saved before this call returned. Saves that
            complete later are included in the ``processed`` signal.
        """
        if self._processing or not self.is_online or not self._items:
            return 0

        self._processing = True
        self._batch = list(self._items)
        self._saved = 0
        self._next()
        return self._saved

    def _next(self) -> None:
        """Try batch items until one has to be awaited or the batch is done."""
        while self._batch:
            item = self._batch.pop(0)
            outcome = self._start_save(item)
            if outcome is None:
                return
            self._settle(item, outcome)
        self._finish()

    def _start_save(self, item: SyncItem) -> bool | None:
        """Call the save collaborator.

        Returns:
            The outcome of a synchronous save, or None if a future is pending.
        """
        request = item.request
        try:
            result = self._save_fn(request.item_id, request.content, request.direction)
        except Exception as e:  # noqa: BLE001
            logger.warning("Sync failed for %s: %s", request.item_id, e)
            return False

        if not isinstance(result, Future):
            return True

        self._awaiting = item
        self._awaiting_future = result
        self._timeout.start()
        result.add_done_callback(lambda fut: self._save_done.emit(item, fut))
        return None

    def _on_save_done(self, item: SyncItem, future: Future[Any]) -> None:
        """Handle completion of an awaited save on the queue's thread."""
        if future is not self._awaiting_future:
            # Already given up on by the timeout
            return
        self._timeout.stop()
        self._awaiting = None
        self._awaiting_future = None

        if future.cancelled():
            logger.warning("Sync cancelled for %s", item.request.item_id)
            success = False
        else:
            error = future.exception()
            if error is not None:
                logger.warning("Sync failed for %s: %s", item.request.item_id, error)
            success = error is None
        self._settle(item, success)
        self._next()

    def _on_timeout(self) -> None:
        item, self._awaiting = self._awaiting, None
        self._awaiting_future = None
        if item is None:
            return
        logger.warning(
            "Sync timed out for %s after %dms", item.request.item_id, self._timeout.interval()
        )
        self._settle(item, False)
        self._next()

    def _settle(self, item: SyncItem, success: bool) -> None:
        """Apply the outcome of one attempt."""
        if success:
            self._saved += 1
            self._items = [i for i in self._items if i is not item]
            return

        item.attempts += 1
        if item.exhausted and any(i is item for i in self._items):
            logger.error(
                "Max retry attempts reached for %s (item %s)",
                item.request.item_id,
                item.id,
            )
            self._items = [i for i in self._items if i is not item]
            self._failed.append(item)
            self.item_failed.emit(item.request.item_id)

    def _finish(self) -> None:
        self._processing = False
        self._last_sync_time = time.time() * 1000
        self._persist()
        self.queue_changed.emit(len(self._items))
        self.processed.emit(self._saved)

    def clear_failed(self) -> None:
        """Forget items that ran out of attempts."""
        self._failed.clear()
        self._persist()

    def _persist(self) -> None:
        save_json(self._store, QUEUE_KEY, [i.to_dict() for i in self._items])
        save_json(self._store, FAILED_KEY, [i.to_dict() for i in self._failed])

    def status(self) -> dict[str, object]:
        """Return queue figures for status displays."""
        return {
            "is_online": self.is_online,
            "queue_length": len(self._items),
            "failed": len(self._failed),
            "last_sync_time": self._last_sync_time,
        }
