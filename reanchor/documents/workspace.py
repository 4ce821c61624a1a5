from __future__ import annotations

"""Per-document wiring of anchor stores, controllers and suggestion services."""

from dataclasses import dataclass, field

from reanchor.anchoring.decorations import DecorationController
from reanchor.anchoring.matcher import FuzzyMatcher
from reanchor.anchoring.store import AnchorStore
from reanchor.documents.store import InMemoryDocumentStore
from reanchor.suggestions.service import SuggestionService


@dataclass
class DocumentSession:
    """Controller and suggestion service attached to one document."""
    document_id: str
    controller: DecorationController
    suggestions: SuggestionService


@dataclass
class AnnotationWorkspace:
    """Create sessions lazily and keep them in sync with the document store."""
    documents: InMemoryDocumentStore
    matcher: FuzzyMatcher = field(default_factory=FuzzyMatcher)
    refresh_threshold: float = 0.7
    undo_limit: int = 10
    context_chars: int = 200
    sessions: dict[str, DocumentSession] = field(default_factory=dict)

    def session(self, document_id: str) -> DocumentSession:
        """Return the session for a document, creating it on first use."""
        existing = self.sessions.get(document_id)
        if existing is not None:
            return existing
        text = self.documents.get_document_text(document_id)
        store = AnchorStore(
            matcher=self.matcher,
            refresh_threshold=self.refresh_threshold,
            document_text=text,
        )
        controller = DecorationController(store, matcher=self.matcher)
        suggestions = SuggestionService(
            controller,
            commit=lambda new_text: self.documents.set_document_text(document_id, new_text),
            undo_limit=self.undo_limit,
            context_chars=self.context_chars,
        )
        self.documents.on_document_text_changed(
            document_id,
            lambda _document_id, new_text: controller.on_document_changed(new_text),
        )
        session = DocumentSession(
            document_id=document_id,
            controller=controller,
            suggestions=suggestions,
        )
        self.sessions[document_id] = session
        return session

    def controller(self, document_id: str) -> DecorationController:
        return self.session(document_id).controller

    def update_document(self, document_id: str, text: str) -> DocumentSession:
        """Store new text; existing sessions refresh through their subscription."""
        self.documents.set_document_text(document_id, text)
        return self.session(document_id)

    def close(self, document_id: str) -> bool:
        """Drop a document and its session."""
        self.sessions.pop(document_id, None)
        return self.documents.delete_document(document_id)
