"""Editor-facing auto-save controller.

Holds the latest unsaved content of the open item and the save status
the editor displays ("Saving...", "Saved", errors). Timing is delegated
to AdaptiveDebounce; failed saves are handed to the SyncQueue so they
are retried once the connection is back.

Usage:
    controller = AutoSaveController(api.save_content, sync_queue=queue)
    controller.state_changed.connect(update_status_label)

    # On every editor change:
    controller.record_edit("insert", pos, 1, text)
    controller.debounced_save(SaveRequest(item_id, text, direction))

    # On blur / navigation away:
    controller.force_save()
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from datetime import datetime
from typing import Any

from PySide6.QtCore import QObject, Signal

from notask.core.adaptive_debounce import AdaptiveDebounce
from notask.core.sync_queue import SyncQueue
from notask.models.edit import EditEvent, EditKind
from notask.models.save import SaveRequest

logger = logging.getLogger(__name__)

SaveFn = Callable[[str, str, str], Any]


class AutoSaveController(QObject):
    """Tracks unsaved content and save status for one editor.

    Signals:
        state_changed: Emitted when any status property changes.
        saved: Emitted with the item ID after a successful save.
        save_failed: Emitted with the error message after a failed save.
    """

    state_changed = Signal()
    saved = Signal(str)
    save_failed = Signal(str)
    _async_done = Signal(object, object)  # (SaveRequest, Future)

    def __init__(
        self,
        save_fn: SaveFn,
        *,
        debounce: AdaptiveDebounce | None = None,
        sync_queue: SyncQueue | None = None,
        enabled: bool = True,
        parent: QObject | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            save_fn: Save collaborator ``save_fn(item_id, content, direction)``;
                may return a ``concurrent.futures.Future``.
            debounce: Debouncer to schedule saves with; a default one is created.
            sync_queue: Queue for failed saves, or None to drop them.
            enabled: Whether saves are performed at all.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._save_fn = save_fn
        self._debounce = debounce if debounce is not None else AdaptiveDebounce(parent=self)
        self._sync_queue = sync_queue
        self._enabled = enabled

        self._pending: SaveRequest | None = None
        self._is_saving = False
        self._last_saved: datetime | None = None
        self._has_unsaved_changes = False
        self._save_error: str | None = None

        self._async_done.connect(self._on_async_done)

    # -- State ----------------------------------------------------------------

    @property
    def debounce(self) -> AdaptiveDebounce:
        """Return the debouncer used for scheduling."""
        return self._debounce

    @property
    def enabled(self) -> bool:
        """Return whether saving is enabled."""
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable saving; disabling cancels a scheduled save."""
        self._enabled = enabled
        if not enabled:
            self._debounce.cancel()

    @property
    def is_saving(self) -> bool:
        """Return True while a save is running."""
        return self._is_saving

    @property
    def last_saved(self) -> datetime | None:
        """Return when the last successful save finished."""
        return self._last_saved

    @property
    def has_unsaved_changes(self) -> bool:
        """Return True if content changed since the last successful save."""
        return self._has_unsaved_changes

    @property
    def save_error(self) -> str | None:
        """Return the last save error message, cleared by new edits."""
        return self._save_error

    @property
    def pending(self) -> SaveRequest | None:
        """Return the latest request not yet saved."""
        return self._pending

    # -- Operations -----------------------------------------------------------

    def record_edit(
        self,
        kind: EditKind | str = EditKind.INSERT,
        position: int = 0,
        length: int = 0,
        content_sample: str | None = "",
    ) -> EditEvent:
        """Forward an edit to the debouncer's tracker."""
        return self._debounce.record_edit(kind, position, length, content_sample)

    def debounced_save(self, request: SaveRequest | None) -> None:
        """Remember ``request`` and schedule a save of the latest content."""
        if not self._enabled or request is None:
            return

        self._pending = request
        self._has_unsaved_changes = True
        self._save_error = None
        self.state_changed.emit()

        self._debounce.execute(self._save_pending)

    def force_save(self) -> None:
        """Save the pending request now (blur, navigation, window close)."""
        if not self._enabled or self._pending is None:
            self._debounce.cancel()
            return
        self._debounce.execute_immediate(self._save_pending)

    def reset(self) -> None:
        """Drop all state, e.g. when another item is opened."""
        self._debounce.reset()
        self._pending = None
        self._has_unsaved_changes = False
        self._save_error = None
        self._is_saving = False
        self._last_saved = None
        self.state_changed.emit()

    # -- Saving ---------------------------------------------------------------

    def _save_pending(self) -> Future[Any] | None:
        """Save the latest pending request.

        Returns the collaborator's future, if any, so the debouncer can
        track it in single-flight mode.
        """
        request = self._pending
        if request is None or not self._enabled:
            return None

        self._is_saving = True
        self._save_error = None
        self.state_changed.emit()
        logger.debug("Saving %s (%d chars)", request.item_id, len(request.content))

        try:
            result = self._save_fn(request.item_id, request.content, request.direction)
        except Exception as e:  # noqa: BLE001
            self._on_failure(request, e)
            return None

        if isinstance(result, Future):
            result.add_done_callback(lambda fut: self._async_done.emit(request, fut))
            return result

        self._on_success(request)
        return None

    def _on_async_done(self, request: SaveRequest, future: Future[Any]) -> None:
        """Handle completion of an asynchronous save on the controller's thread."""
        if future.cancelled():
            self._on_failure(request, RuntimeError("save cancelled"))
            return
        error = future.exception()
        if error is not None:
            self._on_failure(request, error)
        else:
            self._on_success(request)

    def _on_success(self, request: SaveRequest) -> None:
        self._is_saving = False
        self._last_saved = datetime.now()
        # Newer content may have arrived while this save was running
        if self._pending == request:
            self._pending = None
            self._has_unsaved_changes = False
        self.state_changed.emit()
        self.saved.emit(request.item_id)

    def _on_failure(self, request: SaveRequest, error: BaseException) -> None:
        message = str(error) or type(error).__name__
        logger.error("Auto-save failed for %s: %s", request.item_id, message, exc_info=error)
        self._is_saving = False
        self._save_error = message
        self.state_changed.emit()
        self.save_failed.emit(message)

        if self._sync_queue is not None:
            self._sync_queue.enqueue(request)
            logger.info("Added failed save to sync queue: %s", request.item_id)
