"""Configuration manager using QSettings for persistent auto-save settings."""

import logging

from PySide6.QtCore import QSettings

from notask.core.adaptive_debounce import DEFAULT_BASE_DELAY_MS, DebounceOptions

logger = logging.getLogger(__name__)

# Settings keys
_KEY_ENABLED = "autosave/enabled"
_KEY_BASE_DELAY = "autosave/base_delay"
_KEY_MIN_DELAY = "autosave/min_delay"
_KEY_MAX_DELAY = "autosave/max_delay"
_KEY_ENABLE_LEARNING = "autosave/enable_learning"
_KEY_DEBUG_MODE = "autosave/debug_mode"
_KEY_TIME_BASED = "autosave/time_based_adjustment"
_KEY_SINGLE_FLIGHT = "autosave/single_flight"

# Ranges (ms)
_BASE_DELAY_RANGE = (100, 60_000)
_MIN_DELAY_RANGE = (0, 10_000)
_MAX_DELAY_RANGE = (1000, 60_000)


def _clamp(value: int, bounds: tuple[int, int]) -> int:
    return max(bounds[0], min(bounds[1], value))


class ConfigManager:
    """Wrapper around QSettings for type-safe auto-save config access.

    QSettings stores config in platform-specific locations:
    - Windows: HKEY_CURRENT_USER\\Software\\Notask\\Notask
    - macOS: ~/Library/Preferences/com.Notask.Notask.plist
    - Linux: ~/.config/Notask/Notask.conf

    Example:
        config = ConfigManager()
        debounce = AdaptiveDebounce(config.get_base_delay(), config.debounce_options())
    """

    def __init__(
        self,
        organization: str = "Notask",
        application: str = "Notask",
        settings: QSettings | None = None,
    ) -> None:
        """Initialize the config manager.

        Args:
            organization: Organization name for QSettings.
            application: Application name for QSettings.
            settings: Existing QSettings to wrap (overrides the names).
        """
        self._settings = settings if settings is not None else QSettings(organization, application)

    @property
    def settings(self) -> QSettings:
        """Return the underlying QSettings instance."""
        return self._settings

    def _get_int(self, key: str, default: int) -> int:
        value = self._settings.value(key, default)
        try:
            return int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.warning("Invalid value for %s: %r, using %d", key, value, default)
            return default

    def _get_bool(self, key: str, default: bool) -> bool:
        value = self._settings.value(key, default)
        # INI-backed settings hand booleans back as strings
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)

    # -- Auto-save settings ---------------------------------------------------

    def get_enabled(self) -> bool:
        """Return whether auto-save is enabled (default True)."""
        return self._get_bool(_KEY_ENABLED, True)

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable auto-save."""
        self._settings.setValue(_KEY_ENABLED, enabled)

    def get_base_delay(self) -> int:
        """Return the baseline auto-save delay.

        Returns:
            Delay in milliseconds (default 2000, range 100-60000).
        """
        return _clamp(self._get_int(_KEY_BASE_DELAY, DEFAULT_BASE_DELAY_MS), _BASE_DELAY_RANGE)

    def set_base_delay(self, delay_ms: int) -> None:
        """Set the baseline auto-save delay (100-60000 ms)."""
        self._settings.setValue(_KEY_BASE_DELAY, _clamp(delay_ms, _BASE_DELAY_RANGE))

    def get_min_delay(self) -> int:
        """Return the shortest allowed delay (default 500, range 0-10000 ms)."""
        return _clamp(self._get_int(_KEY_MIN_DELAY, 500), _MIN_DELAY_RANGE)

    def set_min_delay(self, delay_ms: int) -> None:
        """Set the shortest allowed delay."""
        self._settings.setValue(_KEY_MIN_DELAY, _clamp(delay_ms, _MIN_DELAY_RANGE))

    def get_max_delay(self) -> int:
        """Return the longest allowed delay.

        Never less than the configured minimum.

        Returns:
            Delay in milliseconds (default 10000, range 1000-60000).
        """
        value = _clamp(self._get_int(_KEY_MAX_DELAY, 10_000), _MAX_DELAY_RANGE)
        return max(value, self.get_min_delay())

    def set_max_delay(self, delay_ms: int) -> None:
        """Set the longest allowed delay."""
        self._settings.setValue(_KEY_MAX_DELAY, _clamp(delay_ms, _MAX_DELAY_RANGE))

    def get_enable_learning(self) -> bool:
        """Return whether delay learning is enabled (default True)."""
        return self._get_bool(_KEY_ENABLE_LEARNING, True)

    def set_enable_learning(self, enabled: bool) -> None:
        """Enable or disable delay learning."""
        self._settings.setValue(_KEY_ENABLE_LEARNING, enabled)

    def get_debug_mode(self) -> bool:
        """Return whether scheduling decisions are logged verbosely."""
        return self._get_bool(_KEY_DEBUG_MODE, False)

    def set_debug_mode(self, enabled: bool) -> None:
        """Enable or disable verbose scheduling logs."""
        self._settings.setValue(_KEY_DEBUG_MODE, enabled)

    def get_time_based_adjustment(self) -> bool:
        """Return whether business-hours delay adjustment is enabled."""
        return self._get_bool(_KEY_TIME_BASED, False)

    def set_time_based_adjustment(self, enabled: bool) -> None:
        """Enable or disable business-hours delay adjustment."""
        self._settings.setValue(_KEY_TIME_BASED, enabled)

    def get_single_flight(self) -> bool:
        """Return whether saves wait for the previous save to finish."""
        return self._get_bool(_KEY_SINGLE_FLIGHT, False)

    def set_single_flight(self, enabled: bool) -> None:
        """Enable or disable single in-flight saves."""
        self._settings.setValue(_KEY_SINGLE_FLIGHT, enabled)

    def debounce_options(self) -> DebounceOptions:
        """Build DebounceOptions from the stored settings."""
        return DebounceOptions(
            min_delay=self.get_min_delay(),
            max_delay=self.get_max_delay(),
            enable_learning=self.get_enable_learning(),
            debug_mode=self.get_debug_mode(),
            enable_time_based_adjustment=self.get_time_based_adjustment(),
            single_flight=self.get_single_flight(),
        )

    def as_dict(self) -> dict[str, object]:
        """Return the effective configuration."""
        return {
            "enabled": self.get_enabled(),
            "base_delay": self.get_base_delay(),
            "min_delay": self.get_min_delay(),
            "max_delay": self.get_max_delay(),
            "enable_learning": self.get_enable_learning(),
            "debug_mode": self.get_debug_mode(),
            "time_based_adjustment": self.get_time_based_adjustment(),
            "single_flight": self.get_single_flight(),
        }

    # -- General settings ------------------------------------------------------

    def clear(self) -> None:
        """Clear all settings (useful for testing or reset)."""
        self._settings.clear()

    def sync(self) -> None:
        """Force settings to be written to disk."""
        self._settings.sync()
