"""Adaptive debounce for editor auto-save.

Wraps a save callable and, on every edit, recomputes how long to wait
before calling it. The wait starts from the edit tracker's
recommendation, is adjusted by what has been learned about the user's
save rhythm, then by network and device conditions, and finally
clamped to the configured bounds.

At most one save is scheduled at a time: each ``execute()`` call
cancels the previous pending one (debounce, not throttle). The save
callable may return a ``concurrent.futures.Future``; by default such a
save runs fire-and-forget, and with ``single_flight`` enabled a new save
waits until the running one completes.

Usage:
    debounce = AdaptiveDebounce(2000, store=SettingsPreferenceStore())
    debounce.record_edit("insert", pos, 1, text)
    debounce.execute(save_fn, item_id, text, "ltr")
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any

from PySide6.QtCore import QObject, QTimer, Signal

from notask.core.edit_history import Clock, EditHistoryTracker, monotonic_ms, round_half_up
from notask.core.environment import (
    ConnectionQuality,
    EnvironmentProvider,
    QtEnvironment,
    is_low_performance,
)
from notask.core.preferences import (
    PreferenceStore,
    load_user_preferences,
    save_user_preferences,
)
from notask.models.analysis import ExecutionRecord, UserBehavior
from notask.models.edit import EditEvent, EditKind

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_MS = 2000

# Execution history bounds: trim to the newest KEEP once over MAX
MAX_EXECUTION_HISTORY = 100
KEEP_EXECUTION_HISTORY = 50

# Per-pattern preference bounds
MAX_PATTERN_PREFERENCES = 20
KEEP_PATTERN_PREFERENCES = 10

# Behavior analysis
MIN_EXECUTIONS_FOR_LEARNING = 10
BEHAVIOR_WINDOW = 20
CANCELLATION_EXECUTIONS = 10
CANCELLATION_ACTIVITY_MS = 300_000
BATCH_GAP_MS = 10_000

LEARNING_FACTORS: dict[UserBehavior, float] = {
    UserBehavior.FAST_SAVER: 0.8,
    UserBehavior.BATCH_SAVER: 1.3,
    UserBehavior.INTERRUPTION_SENSITIVE: 1.5,
    UserBehavior.CONSISTENT_TYPIST: 1.1,
}

# Contextual multipliers
OFFLINE_FACTOR = 0.7
SLOW_CONNECTION_FACTOR = 1.2
LOW_PERFORMANCE_FACTOR = 1.3
BUSINESS_HOURS_FACTOR = 1.1


@dataclass
class DebounceOptions:
    """Bounds and feature flags for AdaptiveDebounce.

    Attributes:
        min_delay: Lower bound for any scheduled delay (ms).
        max_delay: Upper bound for any scheduled delay (ms).
        learning_rate: Reserved; learning is gated by ``enable_learning`` only.
        enable_learning: Learn per-pattern delays and adjust for user behavior.
        debug_mode: Log scheduling decisions at INFO instead of DEBUG.
        enable_time_based_adjustment: Lengthen delays slightly during business hours.
        business_hours: Inclusive (start, end) hours for the time adjustment.
        single_flight: Hold back a save while a previous one is still running.
    """

    min_delay: int = 500
    max_delay: int = 10_000
    learning_rate: float = 0.1
    enable_learning: bool = True
    debug_mode: bool = False
    enable_time_based_adjustment: bool = False
    business_hours: tuple[int, int] = (9, 17)
    single_flight: bool = False

    def __post_init__(self) -> None:
        if self.min_delay < 0:
            msg = f"min_delay must be >= 0, got {self.min_delay}"
            raise ValueError(msg)
        if self.min_delay > self.max_delay:
            msg = f"min_delay ({self.min_delay}) exceeds max_delay ({self.max_delay})"
            raise ValueError(msg)

    def clamp(self, delay: float) -> int:
        """Return ``delay`` limited to [min_delay, max_delay]."""
        return int(max(self.min_delay, min(delay, self.max_delay)))


@dataclass
class PendingSave:
    """The one scheduled save call."""

    fn: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    delay: int = 0
    scheduled_at: float = 0.0


class AdaptiveDebounce(QObject):
    """Debounced save scheduling with behavior-dependent delays.

    Signals:
        save_scheduled: Emitted with the delay (ms) whenever a save is armed.
        save_executed: Emitted with the delay (ms) after the save callable ran.

    Example:
        debounce = AdaptiveDebounce(2000, DebounceOptions(min_delay=500))
        debounce.save_executed.connect(lambda d: print(f"saved after {d}ms"))
        debounce.execute(save_fn, "item-1", content, "ltr")
    """

    save_scheduled = Signal(int)
    save_executed = Signal(int)
    _in_flight_done = Signal(object)  # Future; queued across threads

    def __init__(  # noqa: PLR0913
        self,
        base_delay: int = DEFAULT_BASE_DELAY_MS,
        options: DebounceOptions | None = None,
        *,
        environment: EnvironmentProvider | None = None,
        store: PreferenceStore | None = None,
        clock: Clock = monotonic_ms,
        tracker: EditHistoryTracker | None = None,
        parent: QObject | None = None,
    ) -> None:
        """Initialize the debouncer.

        Args:
            base_delay: Baseline delay in milliseconds.
            options: Bounds and feature flags.
            environment: Network/device probes; defaults to QtEnvironment.
            store: Durable store for learned preferences, or None for memory only.
            clock: Millisecond clock shared with the tracker.
            tracker: Edit tracker to use; a new one is created by default.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self._base_delay = base_delay
        self._options = options if options is not None else DebounceOptions()
        self._environment: EnvironmentProvider = (
            environment if environment is not None else QtEnvironment()
        )
        self._store = store
        self._clock = clock
        self._tracker = tracker if tracker is not None else EditHistoryTracker(clock=clock)

        self._current_delay = base_delay
        self._pending: PendingSave | None = None
        self._in_flight: Future[Any] | None = None
        self._follow_up: PendingSave | None = None
        self._last_execution_time: float = 0.0
        self._execution_history: list[ExecutionRecord] = []
        self._user_preferences = load_user_preferences(store)

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_timeout)
        self._in_flight_done.connect(self._on_in_flight_done)

    # -- Properties -----------------------------------------------------------

    @property
    def tracker(self) -> EditHistoryTracker:
        """Return the owned edit tracker."""
        return self._tracker

    @property
    def options(self) -> DebounceOptions:
        """Return the active options."""
        return self._options

    @property
    def base_delay(self) -> int:
        """Return the baseline delay in ms."""
        return self._base_delay

    @property
    def current_delay(self) -> int:
        """Return the most recently computed delay in ms."""
        return self._current_delay

    @property
    def pending(self) -> PendingSave | None:
        """Return the scheduled save, or None when idle."""
        return self._pending

    @property
    def is_pending(self) -> bool:
        """Return True if a save is scheduled."""
        return self._pending is not None

    @property
    def in_flight(self) -> bool:
        """Return True while a tracked asynchronous save is running."""
        return self._in_flight is not None

    @property
    def last_execution_time(self) -> float:
        """Return the clock time of the last executed save (0 if none)."""
        return self._last_execution_time

    @property
    def execution_history(self) -> list[ExecutionRecord]:
        """Return a copy of recorded executions, oldest first."""
        return list(self._execution_history)

    @property
    def user_preferences(self) -> dict[str, list[int]]:
        """Return a copy of learned delays per typing pattern."""
        return {pattern: list(delays) for pattern, delays in self._user_preferences.items()}

    # -- Scheduling -----------------------------------------------------------

    def execute(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> int:
        """Schedule ``fn(*args, **kwargs)`` after an adaptive delay.

        Any previously scheduled call is cancelled.

        Returns:
            The delay in milliseconds that was scheduled.
        """
        self._timer.stop()

        delay = self.calculate_adaptive_delay()
        self._current_delay = delay
        self._pending = PendingSave(fn, args, kwargs, delay, self._clock())

        level = logging.INFO if self._options.debug_mode else logging.DEBUG
        if logger.isEnabledFor(level):
            logger.log(
                level,
                "Adaptive debounce: %dms (%s, pattern=%s)",
                delay,
                self.get_delay_reason(),
                self._tracker.analyze_typing_patterns().pattern,
            )

        self._timer.start(delay)
        self.save_scheduled.emit(delay)
        return delay

    def execute_immediate(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` now, cancelling any scheduled call.

        Exceptions from ``fn`` propagate to the caller.

        Returns:
            Whatever ``fn`` returns.
        """
        self.cancel()
        self.record_execution(self._clock(), 0)
        result = fn(*args, **kwargs)
        self._track_result(result)
        self.save_executed.emit(0)
        return result

    def cancel(self) -> None:
        """Drop the scheduled call without running it.

        A save that is already running is not affected.
        """
        self._timer.stop()
        self._pending = None
        self._follow_up = None

    def reset(self) -> None:
        """Cancel and clear edit tracking, e.g. when switching documents."""
        self.cancel()
        self._tracker.reset()
        self._current_delay = self._base_delay

    def _on_timeout(self) -> None:
        """Timer fired: run the pending save unless one is still in flight."""
        pending = self._pending
        self._pending = None
        if pending is None:
            return

        if self._options.single_flight and self._in_flight is not None:
            logger.debug("Save in progress, deferring debounced save until it completes")
            self._follow_up = pending
            return

        self._run(pending)

    def _run(self, pending: PendingSave) -> None:
        """Record and invoke a save, logging any failure."""
        self.record_execution(self._clock(), pending.delay)
        try:
            result = pending.fn(*pending.args, **pending.kwargs)
        except Exception:
            logger.exception("Adaptive debounce execution failed")
            return
        self._track_result(result)
        self.save_executed.emit(pending.delay)

    def _track_result(self, result: object) -> None:
        """Watch a returned future for errors and, in single-flight mode, completion."""
        if not isinstance(result, Future):
            return
        if self._options.single_flight:
            self._in_flight = result
        result.add_done_callback(self._on_future_done)

    def _on_future_done(self, future: Future[Any]) -> None:
        """Log the outcome of an asynchronous save (may run on any thread)."""
        if future.cancelled():
            logger.debug("Asynchronous save was cancelled")
        else:
            error = future.exception()
            if error is not None:
                logger.error("Asynchronous save failed: %s", error, exc_info=error)
        if self._options.single_flight:
            self._in_flight_done.emit(future)

    def _on_in_flight_done(self, future: Future[Any]) -> None:
        """Release the in-flight guard and run the deferred save, if any."""
        if future is not self._in_flight:
            return
        self._in_flight = None
        follow_up, self._follow_up = self._follow_up, None
        if follow_up is not None:
            logger.debug("Running deferred save")
            self._run(follow_up)

    # -- Delay calculation ----------------------------------------------------

    def calculate_adaptive_delay(self) -> int:
        """Return the delay for the next save, within [min_delay, max_delay]."""
        recommendation = self._tracker.get_auto_save_recommendations(self._base_delay)
        delay: float = recommendation.recommended_delay

        if self._options.enable_learning:
            delay = self.apply_learning_adjustments(delay)

        delay = self.apply_contextual_modifiers(delay)
        return self._options.clamp(delay)

    def apply_learning_adjustments(self, delay: float) -> int:
        """Scale ``delay`` by the factor for the learned user behavior."""
        factor = LEARNING_FACTORS.get(self.analyze_user_behavior_pattern(), 1.0)
        return round_half_up(delay * factor)

    def apply_contextual_modifiers(self, delay: float) -> int:
        """Scale ``delay`` for network, device, and time-of-day conditions."""
        env = self._environment
        modified = float(delay)

        if not env.is_online():
            modified *= OFFLINE_FACTOR
        elif env.connection_quality() is ConnectionQuality.SLOW:
            modified *= SLOW_CONNECTION_FACTOR

        if is_low_performance(env):
            modified *= LOW_PERFORMANCE_FACTOR

        if self._options.enable_time_based_adjustment:
            start, end = self._options.business_hours
            if start <= env.current_hour() <= end:
                modified *= BUSINESS_HOURS_FACTOR

        return round_half_up(modified)

    def get_delay_reason(self) -> str:
        """Return the tracker's explanation for the current base recommendation."""
        return self._tracker.get_auto_save_recommendations(self._base_delay).reason

    # -- Learning -------------------------------------------------------------

    def analyze_user_behavior_pattern(self) -> UserBehavior:
        """Classify the user's save rhythm from recent executions."""
        if len(self._execution_history) < MIN_EXECUTIONS_FOR_LEARNING:
            return UserBehavior.LEARNING

        recent = self._execution_history[-BEHAVIOR_WINDOW:]
        avg_delay = sum(r.delay for r in recent) / len(recent)
        avg_gap = self.calculate_average_execution_gap(recent)
        cancellation_rate = self.calculate_cancellation_rate()
        base = self._base_delay

        if avg_delay < base * 0.8 and cancellation_rate < 0.1:  # noqa: PLR2004
            return UserBehavior.FAST_SAVER
        if avg_delay > base * 1.3 and avg_gap > BATCH_GAP_MS:  # noqa: PLR2004
            return UserBehavior.BATCH_SAVER
        if cancellation_rate > 0.3:  # noqa: PLR2004
            return UserBehavior.INTERRUPTION_SENSITIVE
        if abs(avg_delay - base) < base * 0.2:  # noqa: PLR2004
            return UserBehavior.CONSISTENT_TYPIST
        return UserBehavior.STANDARD

    @staticmethod
    def calculate_average_execution_gap(executions: list[ExecutionRecord]) -> float:
        """Return the mean time between consecutive executions (0 if fewer than 2)."""
        if len(executions) < 2:  # noqa: PLR2004
            return 0.0
        gaps = [b.timestamp - a.timestamp for a, b in zip(executions, executions[1:], strict=False)]
        return sum(gaps) / len(gaps)

    def calculate_cancellation_rate(self) -> float:
        """Estimate how often scheduled saves were superseded.

        Compares the edit count of the last five minutes with the number
        of recent executions. This is a rough ratio, not a true count of
        cancelled timers.
        """
        recent_executions = self._execution_history[-CANCELLATION_EXECUTIONS:]
        if not recent_executions:
            return 0.0
        edit_count = len(self._tracker.get_recent_activity(CANCELLATION_ACTIVITY_MS))
        if edit_count == 0:
            return 0.0
        return max(0.0, 1 - len(recent_executions) / (edit_count / 5))

    def record_edit(
        self,
        kind: EditKind | str = EditKind.INSERT,
        position: int = 0,
        length: int = 0,
        content_sample: str | None = "",
    ) -> EditEvent:
        """Record an edit on the owned tracker."""
        return self._tracker.record_edit(kind, position, length, content_sample)

    def record_execution(self, timestamp: float, delay: int) -> None:
        """Record a save that ran, and learn from it when enabled."""
        self._last_execution_time = timestamp
        self._execution_history.append(ExecutionRecord(timestamp, delay))
        if len(self._execution_history) > MAX_EXECUTION_HISTORY:
            self._execution_history = self._execution_history[-KEEP_EXECUTION_HISTORY:]

        if self._options.enable_learning:
            self._update_user_preferences(delay)

    def _update_user_preferences(self, used_delay: int) -> None:
        """Append the delay under the current typing pattern and persist."""
        pattern = str(self._tracker.analyze_typing_patterns().pattern)
        delays = self._user_preferences.setdefault(pattern, [])
        delays.append(used_delay)
        if len(delays) > MAX_PATTERN_PREFERENCES:
            self._user_preferences[pattern] = delays[-KEEP_PATTERN_PREFERENCES:]
        save_user_preferences(self._store, self._user_preferences)

    # -- Introspection --------------------------------------------------------

    def get_status(self) -> dict[str, object]:
        """Return a snapshot of debounce state for debugging."""
        analysis = self._tracker.analyze_typing_patterns()
        return {
            "current_delay": self._current_delay,
            "base_delay": self._base_delay,
            "is_pending": self.is_pending,
            "in_flight": self.in_flight,
            "user_pattern": str(self.analyze_user_behavior_pattern()),
            "typing_pattern": str(analysis.pattern),
            "confidence": analysis.confidence,
            "recommendation": self._tracker.get_auto_save_recommendations(
                self._base_delay
            ).to_dict(),
            "execution_count": len(self._execution_history),
            "edit_history": self._tracker.get_debug_info(),
        }

    def set_debug_mode(self, enabled: bool) -> None:
        """Switch scheduling logs between INFO and DEBUG."""
        self._options.debug_mode = enabled
