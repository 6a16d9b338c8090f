"""Edit event model recorded for every content change in the editor."""

from dataclasses import dataclass
from enum import StrEnum


class EditKind(StrEnum):
    """Kind of content change reported by the editor."""

    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"
    PASTE = "paste"

    @classmethod
    def parse(cls, value: object) -> "EditKind":
        """Return the matching kind, falling back to REPLACE for unknown input."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.REPLACE

    @property
    def adds_text(self) -> bool:
        """Return True for kinds that count towards typing speed."""
        return self in (EditKind.INSERT, EditKind.PASTE)


@dataclass(frozen=True, slots=True)
class EditEvent:
    """A single recorded edit.

    Attributes:
        kind: Type of change.
        position: Cursor offset where the change happened.
        length: Characters added (insert/paste) or removed (delete).
        timestamp: Milliseconds from the tracker clock at record time.
        content_length: Length of the content sample taken with the edit.
    """

    kind: EditKind
    position: int
    length: int
    timestamp: float
    content_length: int = 0

    def to_debug_dict(self) -> dict[str, object]:
        """Return the compact form used in debug snapshots."""
        return {"kind": str(self.kind), "timestamp": self.timestamp, "length": self.length}
