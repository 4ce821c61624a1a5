from __future__ import annotations

"""Core data types for anchors, annotations and decorations."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

MetadataT = TypeVar("MetadataT")


@dataclass(frozen=True)
class Span:
    """Character offsets into a document, end exclusive."""
    start: int
    end: int

    @property
    def center(self) -> float:
        return (self.start + self.end) / 2

    def clamp(self, length: int) -> Span:
        """Return the span limited to ``[0, length]``."""
        start = min(max(self.start, 0), length)
        end = min(max(self.end, start), length)
        return Span(start=start, end=end)


@dataclass(frozen=True)
class MatchResult:
    """Best approximate match for a passage."""
    start: int
    end: int
    similarity: float

    @property
    def found(self) -> bool:
        return self.start >= 0 and self.similarity > 0.0


NO_MATCH = MatchResult(start=-1, end=-1, similarity=0.0)


@dataclass(frozen=True)
class LocateResult:
    """Outcome of a one-shot passage lookup and the strategy that produced it."""
    start: int
    end: int
    strategy: str | None = None

    @property
    def found(self) -> bool:
        return self.start >= 0


NOT_FOUND = LocateResult(start=-1, end=-1, strategy=None)


@dataclass(frozen=True)
class Annotation(Generic[MetadataT]):
    """Comment or suggestion attached to a span of document text."""
    annotation_id: str
    selected_text: str
    anchor: Span
    similarity: float = 1.0
    resolved: bool = False
    metadata: MetadataT | None = None


class DecorationEventType(str, Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"
    REFRESH = "REFRESH"


@dataclass(frozen=True)
class Decoration:
    """Renderable highlight for an active annotation."""
    annotation_id: str
    start: int
    end: int

    def to_dict(self) -> dict[str, int | str]:
        return {"id": self.annotation_id, "from": self.start, "to": self.end}


@dataclass(frozen=True)
class DecorationEvent:
    """Change notification delivered to the rendering layer."""
    type: DecorationEventType
    decorations: tuple[Decoration, ...] = ()
