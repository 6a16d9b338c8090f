"""Data models for edits, pattern analysis, and save requests."""

from notask.models.analysis import (
    EditMetrics,
    ExecutionRecord,
    PatternAnalysis,
    SaveRecommendation,
    TypingPattern,
    UserBehavior,
)
from notask.models.edit import EditEvent, EditKind
from notask.models.save import SaveRequest

__all__ = [
    "EditEvent",
    "EditKind",
    "EditMetrics",
    "ExecutionRecord",
    "PatternAnalysis",
    "SaveRecommendation",
    "SaveRequest",
    "TypingPattern",
    "UserBehavior",
]
