"""Core auto-save logic.

This module contains the edit tracking, adaptive scheduling, and
persistence layers used by the editor.

Classes:
    EditHistoryTracker: Bounded edit log with typing-pattern analysis.
    AdaptiveDebounce: QTimer-based debounced save with adaptive delays.
    AutoSaveController: Editor-facing save state on top of the debouncer.
    SyncQueue: Retry queue for failed saves.
    ConfigManager: QSettings wrapper for auto-save configuration.
"""

from notask.core.adaptive_debounce import AdaptiveDebounce, DebounceOptions
from notask.core.auto_save import AutoSaveController
from notask.core.config import ConfigManager
from notask.core.edit_history import EditHistoryTracker
from notask.core.environment import ConnectionQuality, QtEnvironment, StaticEnvironment
from notask.core.preferences import MemoryPreferenceStore, SettingsPreferenceStore
from notask.core.sync_queue import SyncQueue

__all__ = [
    "AdaptiveDebounce",
    "AutoSaveController",
    "ConfigManager",
    "ConnectionQuality",
    "DebounceOptions",
    "EditHistoryTracker",
    "MemoryPreferenceStore",
    "QtEnvironment",
    "SettingsPreferenceStore",
    "StaticEnvironment",
    "SyncQueue",
]
