from __future__ import annotations

"""In-memory document store with change notifications."""

import logging
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)

TextChangedCallback = Callable[[str, str], None]


class DocumentNotFoundError(RuntimeError):
    """Raised when a document ID is unknown to the store."""
    pass


@dataclass
class InMemoryDocumentStore:
    """Simple document store for local use and tests."""
    documents: dict[str, str] = field(default_factory=dict)
    listeners: dict[str, list[TextChangedCallback]] = field(default_factory=dict)

    def has_document(self, document_id: str) -> bool:
        return document_id in self.documents

    def get_document_text(self, document_id: str) -> str:
        """Return the current text of a document."""
        try:
            return self.documents[document_id]
        except KeyError as exc:
            raise DocumentNotFoundError(f"Unknown document: {document_id}") from exc

    def set_document_text(self, document_id: str, text: str) -> bool:
        """Store new text and notify subscribers; returns whether it changed."""
        previous = self.documents.get(document_id)
        self.documents[document_id] = text
        if previous == text:
            return False
        logger.info(
            "document_text_changed",
            extra={"document_id": document_id, "chars": len(text), "new_document": previous is None},
        )
        for callback in list(self.listeners.get(document_id, [])):
            callback(document_id, text)
        return True

    def on_document_text_changed(
        self, document_id: str, callback: TextChangedCallback
    ) -> Callable[[], None]:
        """Subscribe to text changes of one document."""
        callbacks = self.listeners.setdefault(document_id, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def delete_document(self, document_id: str) -> bool:
        """Delete a document and drop its subscribers."""
        self.listeners.pop(document_id, None)
        return self.documents.pop(document_id, None) is not None

    def stats(self) -> dict[str, int | str]:
        """Return basic stats for the document store."""
        return {
            "backend": "memory",
            "document_count": len(self.documents),
            "total_chars": sum(len(text) for text in self.documents.values()),
        }
