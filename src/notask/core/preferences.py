"""Durable key/value stores for learned auto-save preferences.

Values are JSON strings. The debounce layer treats the store as
optional: read and write failures are logged and the caller carries on
with in-memory state.
"""

import json
import logging
import math
from typing import Protocol

from PySide6.QtCore import QSettings

logger = logging.getLogger(__name__)

USER_PREFERENCES_KEY = "adaptiveDebounce/userPreferences"


class PreferenceStore(Protocol):
    """Minimal string store (localStorage-like)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryPreferenceStore:
    """Dict-backed store, used in tests and when persistence is off."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data


class SettingsPreferenceStore:
    """QSettings-backed store.

    QSettings stores values in platform-specific locations, so learned
    preferences survive application restarts.

    Example:
        store = SettingsPreferenceStore()
        store.set("adaptiveDebounce/userPreferences", "{}")
    """

    def __init__(self, settings: QSettings | None = None) -> None:
        """Initialize the store.

        Args:
            settings: QSettings to use; defaults to the Notask application settings.
        """
        self._settings = settings if settings is not None else QSettings("Notask", "Notask")

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    def get(self, key: str) -> str | None:
        value = self._settings.value(key, None)
        return str(value) if value is not None else None

    def set(self, key: str, value: str) -> None:
        self._settings.setValue(key, value)
        self._settings.sync()

    def remove(self, key: str) -> None:
        """Delete a key."""
        self._settings.remove(key)
        self._settings.sync()


def load_json(store: PreferenceStore | None, key: str, default: object) -> object:
    """Read and decode a JSON value, returning ``default`` on any failure.

    Args:
        store: Store to read from, or None for no persistence.
        key: Key to read.
        default: Value returned when the key is missing or unreadable.
    """
    if store is None:
        return default
    try:
        raw = store.get(key)
        if raw is None:
            return default
        return json.loads(raw)
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to load %s: %s", key, e)
        return default


def save_json(store: PreferenceStore | None, key: str, value: object) -> bool:
    """Encode and write a JSON value.

    Returns:
        True if written, False if there is no store or the write failed.
    """
    if store is None:
        return False
    try:
        store.set(key, json.dumps(value))
    except Exception as e:  # noqa: BLE001
        logger.warning("Failed to save %s: %s", key, e)
        return False
    return True


def _is_delay(value: object) -> bool:
    # json.loads accepts Infinity and NaN, and 1e400 decodes to inf
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def load_user_preferences(store: PreferenceStore | None) -> dict[str, list[int]]:
    """Load the pattern -> delays map, dropping malformed entries."""
    raw = load_json(store, USER_PREFERENCES_KEY, {})
    if not isinstance(raw, dict):
        logger.warning("Ignoring stored preferences of type %s", type(raw).__name__)
        return {}

    prefs: dict[str, list[int]] = {}
    for pattern, delays in raw.items():
        if not isinstance(delays, list):
            continue
        prefs[str(pattern)] = [int(d) for d in delays if _is_delay(d)]
    return prefs


def save_user_preferences(store: PreferenceStore | None, prefs: dict[str, list[int]]) -> bool:
    """Persist the pattern -> delays map."""
    return save_json(store, USER_PREFERENCES_KEY, prefs)
