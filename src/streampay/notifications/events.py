"""Event types for the notification system.

- ``RawEvent`` — envelope with type string + JSON content
- ``DraftEvent`` — submission phase change of the draft
- ``StreamCreatedEvent`` — the created stream was found in the indexer
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class RawEvent:
    """Generic event envelope sent to subscribers."""

    type: str
    content: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict."""
        return asdict(self)


@dataclass(frozen=True)
class DraftEvent(RawEvent):
    """Emitted when the draft's submission phase changes."""

    type: str = "draft"
    phase: str = ""
    tx_hash: str = ""
    error: str = ""


@dataclass(frozen=True)
class StreamCreatedEvent(RawEvent):
    """Emitted once a submitted stream is indexed; carries the navigation target."""

    type: str = "stream_created"
    stream_id: str = ""

    @property
    def path(self) -> str:
        return f"/stream/{self.stream_id}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict, including the navigation path."""
        return {**super().to_dict(), "path": self.path}
