from __future__ import annotations

"""In-memory registry of annotations and their current anchors."""

import logging
from dataclasses import replace
from typing import Any

from reanchor.anchoring.matcher import FuzzyMatcher
from reanchor.anchoring.text_index import TextIndex
from reanchor.anchoring.types import Annotation, Span

logger = logging.getLogger(__name__)


class AnchorStoreError(RuntimeError):
    """Base class for caller errors reported by the anchor store."""
    pass


class DuplicateIdError(AnchorStoreError):
    """Raised when an annotation ID is registered twice."""
    pass


class InvalidRangeError(AnchorStoreError):
    """Raised when registration offsets fall outside the document."""
    pass


class AnchorStore:
    """Own the mapping from annotation ID to its current anchor."""
    def __init__(
        self,
        matcher: FuzzyMatcher | None = None,
        refresh_threshold: float = 0.7,
        document_text: str = "",
    ) -> None:
        self.matcher = matcher or FuzzyMatcher()
        self.refresh_threshold = refresh_threshold
        self._document_text = document_text
        self._annotations: dict[str, Annotation[Any]] = {}

    def __len__(self) -> int:
        return len(self._annotations)

    def __contains__(self, annotation_id: object) -> bool:
        return annotation_id in self._annotations

    @property
    def document_text(self) -> str:
        """Document snapshot the current anchors refer to."""
        return self._document_text

    def add(
        self,
        annotation_id: str,
        start: int,
        end: int,
        metadata: Any = None,
        *,
        selected_text: str | None = None,
    ) -> Annotation[Any]:
        """Register an annotation anchored at ``[start, end)`` of the snapshot."""
        if annotation_id in self._annotations:
            raise DuplicateIdError(f"Annotation already registered: {annotation_id}")
        length = len(self._document_text)
        if start < 0 or end < 0 or start > end or end > length:
            raise InvalidRangeError(
                f"Invalid range ({start}, {end}) for document of length {length}"
            )
        if selected_text is None:
            selected_text = self._document_text[start:end]
        annotation: Annotation[Any] = Annotation(
            annotation_id=annotation_id,
            selected_text=selected_text,
            anchor=Span(start=start, end=end),
            similarity=1.0,
            metadata=metadata,
        )
        self._annotations[annotation_id] = annotation
        return annotation

    def remove(self, annotation_id: str) -> Annotation[Any] | None:
        """Delete an annotation; missing IDs are ignored."""
        return self._annotations.pop(annotation_id, None)

    def get(self, annotation_id: str) -> Annotation[Any] | None:
        return self._annotations.get(annotation_id)

    def set_resolved(self, annotation_id: str, resolved: bool = True) -> Annotation[Any] | None:
        """Mark an annotation resolved or active again."""
        annotation = self._annotations.get(annotation_id)
        if annotation is None or annotation.resolved == resolved:
            return annotation
        updated = replace(annotation, resolved=resolved)
        self._annotations[annotation_id] = updated
        return updated

    def annotations(self) -> list[Annotation[Any]]:
        """Return a copy of every annotation, resolved ones included."""
        return list(self._annotations.values())

    def active(self) -> list[Annotation[Any]]:
        return [annotation for annotation in self._annotations.values() if not annotation.resolved]

    def is_stale(self, annotation: Annotation[Any]) -> bool:
        """Whether the last refresh could not confirm the annotation's anchor."""
        return not annotation.resolved and annotation.similarity < self.refresh_threshold

    def refresh_all(self, document_text: str) -> list[Annotation[Any]]:
        """Re-anchor every active annotation against new document text.

        Matches at or above the refresh threshold move the anchor. Weaker
        matches leave the anchor where it was and only record the lower
        similarity, so the annotation can be flagged as possibly outdated.
        """
        index = TextIndex.build(document_text)
        refreshed: dict[str, Annotation[Any]] = {}
        relocated = 0
        stale = 0
        for annotation_id, annotation in self._annotations.items():
            if annotation.resolved or not annotation.selected_text:
                refreshed[annotation_id] = annotation
                continue
            match = self.matcher.find_best_match(
                index,
                annotation.selected_text,
                annotation.anchor.start,
                annotation.anchor.end,
            )
            if match.similarity >= self.refresh_threshold:
                refreshed[annotation_id] = replace(
                    annotation,
                    anchor=Span(start=match.start, end=match.end),
                    similarity=match.similarity,
                )
                relocated += 1
                continue
            refreshed[annotation_id] = replace(annotation, similarity=match.similarity)
            stale += 1
            logger.warning(
                "anchor_stale",
                extra={
                    "annotation_id": annotation_id,
                    "similarity": match.similarity,
                    "threshold": self.refresh_threshold,
                },
            )
        self._annotations = refreshed
        self._document_text = document_text
        logger.info(
            "anchors_refreshed",
            extra={
                "count": len(refreshed),
                "relocated": relocated,
                "stale": stale,
                "document_chars": len(document_text),
            },
        )
        return list(refreshed.values())
