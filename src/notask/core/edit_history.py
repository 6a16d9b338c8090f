"""Edit history tracking and typing-pattern analysis.

The tracker keeps a bounded log of edit events for the open document
and derives the statistics the auto-save layer uses to pick a delay:
typing speed, edit frequency, active-typing detection, and a named
pattern classification.

Usage:
    tracker = EditHistoryTracker()
    tracker.record_edit("insert", position=10, length=1, content_sample=text)
    rec = tracker.get_auto_save_recommendations(base_delay=2000)
    print(rec.recommended_delay, rec.reason)
"""

import logging
import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from notask.models.analysis import (
    EditMetrics,
    PatternAnalysis,
    SaveRecommendation,
    TypingPattern,
)
from notask.models.edit import EditEvent, EditKind

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

DEFAULT_MAX_HISTORY = 50

# Analysis windows (ms)
PATTERN_WINDOW_MS = 30_000
GAP_WINDOW_MS = 5_000
ACTIVE_WINDOW_MS = 10_000
SPEED_WINDOW_MS = 60_000
SAVE_NOW_IDLE_MS = 2_000

MAX_RECOMMENDED_DELAY_MS = 10_000

# Content size floors: (min content length, delay floor, reason suffix)
_CONTENT_FLOORS = (
    (100_000, 5000, "large content adjustment"),
    (50_000, 4000, "medium content adjustment"),
)


def monotonic_ms() -> float:
    """Return the monotonic clock in milliseconds."""
    return time.monotonic() * 1000


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return math.floor(value + 0.5)


def _as_int(value: object) -> int:
    """Coerce a numeric argument, defaulting to 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return 0


def _as_float(value: object) -> float:
    """Coerce a numeric argument to a finite float, defaulting to 0."""
    if isinstance(value, int | float) and math.isfinite(value):
        return float(value)
    return 0.0


@dataclass(frozen=True, slots=True)
class _Window:
    """Figures a pattern rule can look at."""

    typing_speed: int
    edit_frequency: float
    is_actively_typing: bool
    insert_ratio: float
    delete_ratio: float
    paste_ratio: float
    avg_gap: float


@dataclass(frozen=True, slots=True)
class PatternRule:
    """One row of the ordered classification table."""

    matches: Callable[[_Window], bool]
    pattern: TypingPattern
    confidence: float


# First matching rule wins.
PATTERN_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        lambda w: not w.is_actively_typing and w.edit_frequency < 5,  # noqa: PLR2004
        TypingPattern.IDLE,
        0.9,
    ),
    PatternRule(lambda w: w.paste_ratio > 0.5, TypingPattern.PASTING, 0.8),  # noqa: PLR2004
    PatternRule(
        lambda w: w.insert_ratio > 0.8 and w.avg_gap < 300 and w.typing_speed > 100,  # noqa: PLR2004
        TypingPattern.FAST_TYPING,
        0.9,
    ),
    PatternRule(
        lambda w: w.insert_ratio > 0.7 and w.avg_gap < 800,  # noqa: PLR2004
        TypingPattern.STEADY_TYPING,
        0.8,
    ),
    PatternRule(lambda w: w.delete_ratio > 0.4, TypingPattern.EDITING, 0.7),  # noqa: PLR2004
    PatternRule(lambda w: w.edit_frequency > 20, TypingPattern.RAPID_CHANGES, 0.8),  # noqa: PLR2004
)
DEFAULT_PATTERN = TypingPattern.UNKNOWN
DEFAULT_CONFIDENCE = 0.5


@dataclass(frozen=True, slots=True)
class DelayRule:
    """Delay adjustment for one pattern.

    The delay is ``bound(base * multiplier, limit)`` where ``bound`` is
    ``max`` for patterns that lengthen the wait and ``min`` for those
    that shorten it.
    """

    multiplier: float
    limit: int
    lengthen: bool
    reason: str

    def apply(self, base_delay: float) -> float:
        scaled = base_delay * self.multiplier
        return max(scaled, self.limit) if self.lengthen else min(scaled, self.limit)


DELAY_RULES: dict[TypingPattern, DelayRule] = {
    TypingPattern.FAST_TYPING: DelayRule(2.0, 4000, True, "fast typing detected - extended delay"),
    TypingPattern.STEADY_TYPING: DelayRule(1.5, 3000, True, "steady typing - moderate delay"),
    TypingPattern.RAPID_CHANGES: DelayRule(1.8, 3500, True, "rapid changes - longer delay to batch"),
    TypingPattern.EDITING: DelayRule(1.2, 2500, True, "editing mode - slight delay increase"),
    TypingPattern.PASTING: DelayRule(0.8, 1500, False, "paste operation - quicker save"),
    TypingPattern.IDLE: DelayRule(0.5, 1000, False, "idle state - quick save"),
}


class EditHistoryTracker:
    """Bounded log of edit events with typing-pattern statistics.

    One tracker lives per editing session; call ``reset()`` when the
    editor switches to another document. None of the methods raise:
    missing or invalid numeric input is treated as 0.

    Example:
        tracker = EditHistoryTracker(max_history_size=50)
        tracker.record_edit(EditKind.INSERT, 0, 1, "a")
        analysis = tracker.analyze_typing_patterns()
    """

    def __init__(
        self,
        max_history_size: int = DEFAULT_MAX_HISTORY,
        clock: Clock = monotonic_ms,
    ) -> None:
        """Initialize the tracker.

        Args:
            max_history_size: Number of events kept; oldest are dropped first.
            clock: Callable returning the current time in milliseconds.
        """
        self._clock = clock
        self._max_history_size = max(1, _as_int(max_history_size))
        self._history: deque[EditEvent] = deque(maxlen=self._max_history_size)
        self._session_start_time = clock()
        self._last_edit_time: float | None = None
        self._content_length = 0

    @property
    def max_history_size(self) -> int:
        """Return the history capacity."""
        return self._max_history_size

    @property
    def history(self) -> list[EditEvent]:
        """Return a copy of the recorded events, oldest first."""
        return list(self._history)

    @property
    def last_edit_time(self) -> float | None:
        """Return the timestamp of the latest edit, or None."""
        return self._last_edit_time

    @property
    def content_length(self) -> int:
        """Return the length of the most recent content sample."""
        return self._content_length

    @property
    def session_start_time(self) -> float:
        """Return when the tracker was created or last reset."""
        return self._session_start_time

    def now(self) -> float:
        """Return the tracker clock in milliseconds."""
        return self._clock()

    def record_edit(
        self,
        kind: EditKind | str = EditKind.INSERT,
        position: int = 0,
        length: int = 0,
        content_sample: str | None = "",
    ) -> EditEvent:
        """Record a new edit event.

        Args:
            kind: Type of edit; unknown values are recorded as ``replace``.
            position: Cursor position of the edit.
            length: Number of characters affected.
            content_sample: Current content; only its length is kept.

        Returns:
            The recorded event.
        """
        timestamp = self._clock()
        sample = content_sample if isinstance(content_sample, str) else ""
        event = EditEvent(
            kind=EditKind.parse(kind),
            position=_as_int(position),
            length=_as_int(length),
            timestamp=timestamp,
            content_length=len(sample),
        )
        self._history.append(event)
        self._last_edit_time = timestamp
        self._content_length = len(sample)

        logger.debug(
            "Edit recorded: %s at %d (+%d), content length %d",
            event.kind,
            event.position,
            event.length,
            event.content_length,
        )
        return event

    def get_recent_activity(self, window_ms: float = ACTIVE_WINDOW_MS) -> list[EditEvent]:
        """Return events recorded within the trailing window, oldest first.

        Args:
            window_ms: Window length in milliseconds.
        """
        cutoff = self._clock() - _as_float(window_ms)
        return [event for event in self._history if event.timestamp >= cutoff]

    def get_typing_speed(self, window_ms: float = SPEED_WINDOW_MS) -> int:
        """Return characters per minute added by insert/paste edits in the window."""
        window_ms = _as_float(window_ms)
        recent = self.get_recent_activity(window_ms)
        if not recent:
            return 0
        total_chars = sum(event.length for event in recent if event.kind.adds_text)
        span_ms = max(1000, window_ms)
        return round_half_up(total_chars / span_ms * 60_000)

    def is_actively_typing(self, max_gap_ms: float = 1500) -> bool:
        """Return True if the last edit is recent and the user made several edits.

        Args:
            max_gap_ms: Largest gap since the last edit still counted as typing.
        """
        max_gap_ms = _as_float(max_gap_ms)
        if self._last_edit_time is None:
            return False
        since_last = self._clock() - self._last_edit_time
        return since_last < max_gap_ms and len(self.get_recent_activity(ACTIVE_WINDOW_MS)) >= 2  # noqa: PLR2004

    def get_edit_frequency(self, window_ms: float = SPEED_WINDOW_MS) -> float:
        """Return edits per minute within the window."""
        window_ms = _as_float(window_ms)
        if window_ms <= 0:
            return 0.0
        return len(self.get_recent_activity(window_ms)) / window_ms * 60_000

    def analyze_typing_patterns(self) -> PatternAnalysis:
        """Classify recent editing behavior into a named pattern."""
        recent = self.get_recent_activity(PATTERN_WINDOW_MS)
        if not recent:
            return PatternAnalysis(pattern=TypingPattern.IDLE, confidence=1.0)

        count = len(recent)
        window = _Window(
            typing_speed=self.get_typing_speed(),
            edit_frequency=self.get_edit_frequency(),
            is_actively_typing=self.is_actively_typing(),
            insert_ratio=sum(e.kind is EditKind.INSERT for e in recent) / count,
            delete_ratio=sum(e.kind is EditKind.DELETE for e in recent) / count,
            paste_ratio=sum(e.kind is EditKind.PASTE for e in recent) / count,
            avg_gap=self._average_gap(self.get_recent_activity(GAP_WINDOW_MS)),
        )

        pattern, confidence = DEFAULT_PATTERN, DEFAULT_CONFIDENCE
        for rule in PATTERN_RULES:
            if rule.matches(window):
                pattern, confidence = rule.pattern, rule.confidence
                break

        return PatternAnalysis(
            pattern=pattern,
            confidence=confidence,
            typing_speed=window.typing_speed,
            edit_frequency=window.edit_frequency,
            is_actively_typing=window.is_actively_typing,
            insert_ratio=window.insert_ratio,
            delete_ratio=window.delete_ratio,
            paste_ratio=window.paste_ratio,
            avg_gap=window.avg_gap,
            metrics=EditMetrics(
                recent_edit_count=count,
                content_length=self._content_length,
                session_duration=self._clock() - self._session_start_time,
            ),
        )

    @staticmethod
    def _average_gap(events: list[EditEvent]) -> float:
        """Return the mean inter-arrival time, or 0 with fewer than two events."""
        if len(events) < 2:  # noqa: PLR2004
            return 0.0
        gaps = [b.timestamp - a.timestamp for a, b in zip(events, events[1:], strict=False)]
        return sum(gaps) / len(gaps)

    def get_auto_save_recommendations(self, base_delay: float = 2000) -> SaveRecommendation:
        """Recommend an auto-save delay for the current behavior.

        Args:
            base_delay: Baseline delay in milliseconds.

        Returns:
            Recommendation capped at 10 seconds, with a readable reason.
        """
        base_delay = _as_float(base_delay)
        analysis = self.analyze_typing_patterns()
        delay: float = base_delay
        reason = "default"

        rule = DELAY_RULES.get(analysis.pattern)
        if rule is not None:
            delay = rule.apply(base_delay)
            reason = rule.reason

        for min_length, floor, note in _CONTENT_FLOORS:
            if self._content_length > min_length:
                delay = max(delay, floor)
                reason += f" + {note}"
                break

        if self._last_edit_time is None:
            idle_long_enough = True
        else:
            idle_long_enough = self._clock() - self._last_edit_time > SAVE_NOW_IDLE_MS

        return SaveRecommendation(
            recommended_delay=round_half_up(min(delay, MAX_RECOMMENDED_DELAY_MS)),
            reason=reason,
            analysis=analysis,
            should_save_now=analysis.pattern is TypingPattern.IDLE and idle_long_enough,
        )

    def reset(self) -> None:
        """Clear history, e.g. when switching to a different item."""
        self._history.clear()
        self._session_start_time = self._clock()
        self._last_edit_time = None
        self._content_length = 0

    def get_debug_info(self) -> dict[str, object]:
        """Return a snapshot of tracker state for logging."""
        return {
            "history_size": len(self._history),
            "last_edit_time": self._last_edit_time,
            "content_length": self._content_length,
            "session_duration": self._clock() - self._session_start_time,
            "analysis": self.analyze_typing_patterns().to_dict(),
            "recommendations": self.get_auto_save_recommendations().to_dict(),
            "recent_edits": [e.to_debug_dict() for e in self.get_recent_activity(ACTIVE_WINDOW_MS)],
        }
