from __future__ import annotations

"""Applying AI suggestions and review findings to an annotated document."""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from reanchor.anchoring.decorations import DecorationController
from reanchor.anchoring.store import AnchorStoreError
from reanchor.anchoring.types import Annotation, LocateResult
from reanchor.suggestions.providers import ReplacementError, ReplacementProvider

logger = logging.getLogger(__name__)


class SuggestionError(RuntimeError):
    """Raised when a suggestion refers to an unknown annotation."""
    pass


@dataclass(frozen=True)
class ReviewFinding:
    """Issue reported by an AI review for a passage of the document."""
    problematic_text: str
    comment: str
    issue_type: str = "clarity"
    severity: str = "medium"
    suggestion: str | None = None


@dataclass(frozen=True)
class FailedFinding:
    issue_type: str
    text: str
    reason: str


@dataclass
class ReviewResult:
    created: list[Annotation[Any]] = field(default_factory=list)
    failed: list[FailedFinding] = field(default_factory=list)


@dataclass(frozen=True)
class UndoEntry:
    """Document text saved before a suggestion was applied."""
    content: str
    annotation_id: str
    original_text: str
    new_text: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SuggestionOutcome:
    applied: bool
    annotation_id: str
    start: int = -1
    end: int = -1
    strategy: str | None = None
    detail: str | None = None


def format_review_comment(finding: ReviewFinding) -> str:
    """Build the comment body shown for a review finding."""
    text = f"[{finding.issue_type.upper()}] {finding.comment}"
    if finding.suggestion:
        text += f'\n\nSuggested change: "{finding.suggestion}"'
    return text


class SuggestionService:
    """Apply suggestions to one document and keep a bounded undo history."""
    def __init__(
        self,
        controller: DecorationController,
        commit: Callable[[str], object] | None = None,
        undo_limit: int = 10,
        context_chars: int = 200,
    ) -> None:
        self.controller = controller
        self._commit = commit or controller.on_document_changed
        self.undo_limit = undo_limit
        self.context_chars = context_chars
        self.undo_stack: list[UndoEntry] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    def apply_suggestion(self, annotation_id: str, suggestion: str) -> SuggestionOutcome:
        """Replace the annotated passage with ``suggestion`` and resolve it.

        When the passage can no longer be found the annotation is still
        resolved and the outcome asks for the change to be applied manually.
        """
        with self.controller.lock:
            annotation = self._require(annotation_id)
            text = self.controller.document_text
            located = self._locate(annotation, text)
            if not located.found:
                self.controller.resolve(annotation_id)
                logger.warning("suggestion_target_missing", extra={"annotation_id": annotation_id})
                return SuggestionOutcome(
                    applied=False,
                    annotation_id=annotation_id,
                    detail=(
                        "The text to be replaced could not be found. It may have been "
                        "modified by a previous suggestion; apply it manually if needed."
                    ),
                )
            updated = text[: located.start] + suggestion + text[located.end :]
            self._push_undo(
                UndoEntry(
                    content=text,
                    annotation_id=annotation_id,
                    original_text=text[located.start : located.end],
                    new_text=suggestion,
                )
            )
            # Refresh leaves resolved anchors in place.
            self.controller.resolve(annotation_id)
            self._commit(updated)
        logger.info(
            "suggestion_applied",
            extra={"annotation_id": annotation_id, "strategy": located.strategy},
        )
        return SuggestionOutcome(
            applied=True,
            annotation_id=annotation_id,
            start=located.start,
            end=located.start + len(suggestion),
            strategy=located.strategy,
        )

    def undo_last_change(self) -> UndoEntry | None:
        """Restore the text saved by the most recent applied suggestion.

        The text is committed before the annotation is reopened, so the
        decoration it gets back points into the restored text.
        """
        with self.controller.lock:
            if not self.undo_stack:
                return None
            entry = self.undo_stack.pop()
            self._commit(entry.content)
            if entry.annotation_id in self.controller.store:
                self.controller.resolve(entry.annotation_id, resolved=False)
        logger.info("suggestion_undone", extra={"annotation_id": entry.annotation_id})
        return entry

    def cleanup_outdated(self, annotation_ids: Iterable[str] | None = None) -> list[str]:
        """Remove active annotations whose text can no longer be located."""
        wanted = set(annotation_ids) if annotation_ids is not None else None
        removed: list[str] = []
        with self.controller.lock:
            text = self.controller.document_text
            for annotation in self.controller.store.active():
                if wanted is not None and annotation.annotation_id not in wanted:
                    continue
                if not annotation.selected_text or annotation.selected_text in text:
                    continue
                if self.controller.locate_passage(annotation.selected_text).found:
                    continue
                self.controller.on_annotation_removed(annotation.annotation_id)
                removed.append(annotation.annotation_id)
        if removed:
            logger.info("outdated_annotations_removed", extra={"count": len(removed)})
        return removed

    def create_review_comments(self, findings: Iterable[ReviewFinding]) -> ReviewResult:
        """Anchor each review finding as a new annotation."""
        result = ReviewResult()
        with self.controller.lock:
            for finding in findings:
                located = self.controller.locate_passage(finding.problematic_text)
                if not located.found:
                    logger.warning("review_text_not_found", extra={"issue_type": finding.issue_type})
                    result.failed.append(
                        FailedFinding(
                            issue_type=finding.issue_type,
                            text=finding.problematic_text,
                            reason="Text not found in document",
                        )
                    )
                    continue
                metadata = {
                    "comment": format_review_comment(finding),
                    "ai_generated": True,
                    "issue_type": finding.issue_type,
                    "severity": finding.severity,
                    "suggestion": finding.suggestion,
                }
                try:
                    annotation = self.controller.on_annotation_created(
                        uuid.uuid4().hex,
                        located.start,
                        located.end,
                        metadata,
                    )
                except AnchorStoreError as exc:
                    result.failed.append(
                        FailedFinding(
                            issue_type=finding.issue_type,
                            text=finding.problematic_text,
                            reason=str(exc),
                        )
                    )
                    continue
                result.created.append(annotation)
        return result

    async def suggest_replacement(
        self,
        annotation_id: str,
        provider: ReplacementProvider,
        context: str | None = None,
    ) -> str:
        """Ask a provider for replacement text for an annotated passage."""
        annotation = self._require(annotation_id)
        if context is None:
            context = self.context_around(annotation)
        try:
            return await provider.request_replacement(annotation.selected_text, context)
        except ReplacementError:
            logger.warning("replacement_failed", extra={"annotation_id": annotation_id})
            raise

    def context_around(self, annotation: Annotation[Any]) -> str:
        """Return the document text surrounding an annotation's anchor."""
        text = self.controller.document_text
        span = annotation.anchor.clamp(len(text))
        start = max(0, span.start - self.context_chars)
        end = min(len(text), span.end + self.context_chars)
        return text[start:end]

    def _require(self, annotation_id: str) -> Annotation[Any]:
        annotation = self.controller.store.get(annotation_id)
        if annotation is None:
            raise SuggestionError(f"Unknown annotation: {annotation_id}")
        return annotation

    def _locate(self, annotation: Annotation[Any], text: str) -> LocateResult:
        """Prefer the current anchor when it still holds the selected text."""
        start, end = annotation.anchor.start, annotation.anchor.end
        if annotation.selected_text and 0 <= start <= end <= len(text):
            if text[start:end] == annotation.selected_text:
                return LocateResult(start=start, end=end, strategy="anchor")
        return self.controller.locate_passage(annotation.selected_text)

    def _push_undo(self, entry: UndoEntry) -> None:
        if self.undo_limit <= 0:
            return
        while len(self.undo_stack) >= self.undo_limit:
            self.undo_stack.pop(0)
        self.undo_stack.append(entry)
