"""Tests for preference stores and JSON helpers."""

import json
import logging
from collections.abc import Callable

import pytest
from PySide6.QtCore import QSettings

from notask.core.preferences import (
    USER_PREFERENCES_KEY,
    MemoryPreferenceStore,
    SettingsPreferenceStore,
    load_json,
    load_user_preferences,
    save_json,
    save_user_preferences,
)


class TestMemoryStore:
    """Test the dict-backed store."""

    def test_get_set(self) -> None:
        """Test basic access."""
        store = MemoryPreferenceStore()
        assert store.get("a") is None
        store.set("a", "1")
        assert store.get("a") == "1"
        assert "a" in store

    def test_initial_data_copied(self) -> None:
        """Test that the initial dict is not shared."""
        data = {"a": "1"}
        store = MemoryPreferenceStore(data)
        store.set("b", "2")
        assert "b" not in data


class TestSettingsStore:
    """Test the QSettings-backed store."""

    def test_round_trip(self, settings_factory: Callable[[], QSettings]) -> None:
        """Test that values are readable from a second instance."""
        SettingsPreferenceStore(settings_factory()).set(USER_PREFERENCES_KEY, '{"idle": [1000]}')

        store = SettingsPreferenceStore(settings_factory())
        assert store.get(USER_PREFERENCES_KEY) == '{"idle": [1000]}'

    def test_remove(self, settings_factory: Callable[[], QSettings]) -> None:
        """Test deleting a key."""
        store = SettingsPreferenceStore(settings_factory())
        store.set("syncQueue/queue", "[]")
        store.remove("syncQueue/queue")
        assert store.get("syncQueue/queue") is None


class TestJsonHelpers:
    """Test JSON encoding helpers."""

    def test_no_store(self) -> None:
        """Test that a missing store is a no-op."""
        assert load_json(None, "k", 5) == 5
        assert save_json(None, "k", 5) is False

    def test_round_trip(self) -> None:
        """Test saving then loading."""
        store = MemoryPreferenceStore()
        assert save_json(store, "k", {"a": [1, 2]}) is True
        assert load_json(store, "k", None) == {"a": [1, 2]}

    def test_invalid_json(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that undecodable data returns the default with a warning."""
        store = MemoryPreferenceStore({"k": "not json"})
        with caplog.at_level(logging.WARNING):
            assert load_json(store, "k", []) == []
        assert "Failed to load k" in caplog.text

    def test_unserializable_value(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that an unserializable value is reported, not raised."""
        with caplog.at_level(logging.WARNING):
            assert save_json(MemoryPreferenceStore(), "k", object()) is False
        assert "Failed to save k" in caplog.text


class TestUserPreferences:
    """Test the learned-delay map."""

    def test_round_trip(self) -> None:
        """Test saving and loading preferences."""
        store = MemoryPreferenceStore()
        prefs = {"idle": [1000, 900], "fast_typing": [4000]}
        save_user_preferences(store, prefs)
        assert load_user_preferences(store) == prefs

    def test_malformed_entries_dropped(self) -> None:
        """Test that non-list values and non-numeric delays are dropped."""
        raw = {"idle": [1000, "x", None, True, 1200.0], "pasting": "fast"}
        store = MemoryPreferenceStore({USER_PREFERENCES_KEY: json.dumps(raw)})
        assert load_user_preferences(store) == {"idle": [1000, 1200]}

    def test_wrong_type(self) -> None:
        """Test that a non-object value loads as empty."""
        store = MemoryPreferenceStore({USER_PREFERENCES_KEY: "[1, 2]"})
        assert load_user_preferences(store) == {}

    def test_non_finite_delays_dropped(self) -> None:
        """Test that Infinity, NaN and overflowing numbers are dropped."""
        raw = '{"idle": [Infinity, 1000, NaN, -Infinity, 1e400, 1500]}'
        store = MemoryPreferenceStore({USER_PREFERENCES_KEY: raw})
        assert load_user_preferences(store) == {"idle": [1000, 1500]}
