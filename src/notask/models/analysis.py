"""Results produced by typing-pattern analysis and save learning."""

from dataclasses import asdict, dataclass, field
from enum import StrEnum


class TypingPattern(StrEnum):
    """Classification of recent editing behavior."""

    IDLE = "idle"
    PASTING = "pasting"
    FAST_TYPING = "fast_typing"
    STEADY_TYPING = "steady_typing"
    EDITING = "editing"
    RAPID_CHANGES = "rapid_changes"
    UNKNOWN = "unknown"


class UserBehavior(StrEnum):
    """Long-term save behavior learned from execution history."""

    LEARNING = "learning"
    FAST_SAVER = "fast_saver"
    BATCH_SAVER = "batch_saver"
    INTERRUPTION_SENSITIVE = "interruption_sensitive"
    CONSISTENT_TYPIST = "consistent_typist"
    STANDARD = "standard"


@dataclass(frozen=True, slots=True)
class EditMetrics:
    """Context figures attached to a pattern analysis."""

    recent_edit_count: int = 0
    content_length: int = 0
    session_duration: float = 0.0


@dataclass(frozen=True, slots=True)
class PatternAnalysis:
    """Outcome of classifying the trailing edit window.

    Ratios and ``avg_gap`` are computed over the 30s and 5s windows
    respectively; all numbers are zero for an idle tracker.
    """

    pattern: TypingPattern
    confidence: float
    typing_speed: int = 0
    edit_frequency: float = 0.0
    is_actively_typing: bool = False
    insert_ratio: float = 0.0
    delete_ratio: float = 0.0
    paste_ratio: float = 0.0
    avg_gap: float = 0.0
    metrics: EditMetrics = field(default_factory=EditMetrics)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly dict."""
        data = asdict(self)
        data["pattern"] = str(self.pattern)
        return data


@dataclass(frozen=True, slots=True)
class SaveRecommendation:
    """Suggested auto-save delay for the current editing behavior."""

    recommended_delay: int
    reason: str
    analysis: PatternAnalysis
    should_save_now: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly dict."""
        return {
            "recommended_delay": self.recommended_delay,
            "reason": self.reason,
            "should_save_now": self.should_save_now,
            "analysis": self.analysis.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class ExecutionRecord:
    """A save that actually ran, with the delay that preceded it."""

    timestamp: float
    delay: int
