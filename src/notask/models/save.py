"""Save request passed from the editor to the save collaborator."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SaveRequest:
    """Content update for one tree item.

    Attributes:
        item_id: ID of the note or task being edited.
        content: Serialized rich-text content.
        direction: Text direction of the content ("ltr" or "rtl").
    """

    item_id: str
    content: str
    direction: str = "ltr"

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-friendly dict."""
        return {"item_id": self.item_id, "content": self.content, "direction": self.direction}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "SaveRequest":
        """Build a request from a dict produced by ``to_dict``.

        Raises:
            KeyError: If ``item_id`` is missing.
        """
        return cls(
            item_id=str(data["item_id"]),
            content=str(data.get("content", "")),
            direction=str(data.get("direction", "ltr")),
        )
