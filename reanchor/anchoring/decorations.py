from __future__ import annotations

"""Decoration tracking between document changes and the rendering layer."""

import logging
import threading
from collections import deque
from enum import Enum
from typing import Any, Callable

from reanchor.anchoring.matcher import FuzzyMatcher
from reanchor.anchoring.store import AnchorStore
from reanchor.anchoring.types import (
    Annotation,
    Decoration,
    DecorationEvent,
    DecorationEventType,
    LocateResult,
)

logger = logging.getLogger(__name__)

DecorationListener = Callable[[DecorationEvent], None]
ActivationListener = Callable[[str], None]


class ControllerState(str, Enum):
    IDLE = "idle"
    DIRTY = "dirty"


class DecorationController:
    """Turn anchor store state into decoration events for a single document."""
    def __init__(self, store: AnchorStore, matcher: FuzzyMatcher | None = None) -> None:
        self.store = store
        self.matcher = matcher or store.matcher
        self.state = ControllerState.IDLE
        self._lock = threading.RLock()
        self._pending_texts: deque[str] = deque()
        self._draining = False
        self._decoration_listeners: list[DecorationListener] = []
        self._activation_listeners: list[ActivationListener] = []

    @property
    def lock(self) -> threading.RLock:
        """Lock held by every mutation of this controller's document state."""
        return self._lock

    @property
    def document_text(self) -> str:
        return self.store.document_text

    def on_decorations_changed(self, listener: DecorationListener) -> Callable[[], None]:
        """Subscribe to decoration events; returns an unsubscribe callable."""
        self._decoration_listeners.append(listener)
        return lambda: _discard(self._decoration_listeners, listener)

    def on_annotation_activated(self, listener: ActivationListener) -> Callable[[], None]:
        """Subscribe to click-to-select notifications."""
        self._activation_listeners.append(listener)
        return lambda: _discard(self._activation_listeners, listener)

    def on_annotation_created(
        self,
        annotation_id: str,
        start: int,
        end: int,
        metadata: Any = None,
        *,
        selected_text: str | None = None,
    ) -> Annotation[Any]:
        """Register an annotation and emit its decoration."""
        with self._lock:
            annotation = self.store.add(
                annotation_id,
                start,
                end,
                metadata,
                selected_text=selected_text,
            )
            decoration = Decoration(annotation_id, annotation.anchor.start, annotation.anchor.end)
            self._emit(DecorationEvent(DecorationEventType.ADD, (decoration,)))
        return annotation

    def on_annotation_removed(self, annotation_id: str) -> bool:
        """Remove an annotation; returns False when it was not registered."""
        with self._lock:
            removed = self.store.remove(annotation_id)
            if removed is None:
                return False
            self._emit(
                DecorationEvent(
                    DecorationEventType.REMOVE,
                    (Decoration(annotation_id, removed.anchor.start, removed.anchor.end),),
                )
            )
        return True

    def on_document_changed(self, new_text: str) -> DecorationEvent | None:
        """Re-anchor everything against ``new_text`` and emit the full set.

        Changes made by a listener while an event is being delivered are
        queued and processed in arrival order once delivery finishes, so every
        listener ends on the newest set. Such nested calls return None; the
        outer call returns the last event it emitted.
        """
        with self._lock:
            self._pending_texts.append(new_text)
            if self._draining:
                return None
            self._draining = True
            event: DecorationEvent | None = None
            try:
                while self._pending_texts:
                    text = self._pending_texts.popleft()
                    self.state = ControllerState.DIRTY
                    self.store.refresh_all(text)
                    event = DecorationEvent(
                        DecorationEventType.REFRESH, tuple(self.decorations())
                    )
                    self.state = ControllerState.IDLE
                    self._emit(event)
            finally:
                self._pending_texts.clear()
                self._draining = False
                self.state = ControllerState.IDLE
        return event

    def resolve(self, annotation_id: str, resolved: bool = True) -> Annotation[Any] | None:
        """Resolve or reopen an annotation, updating its decoration."""
        with self._lock:
            before = self.store.get(annotation_id)
            annotation = self.store.set_resolved(annotation_id, resolved)
            if annotation is None or before is None or before.resolved == resolved:
                return annotation
            decoration = Decoration(annotation_id, annotation.anchor.start, annotation.anchor.end)
            if resolved:
                self._emit(DecorationEvent(DecorationEventType.REMOVE, (decoration,)))
            else:
                visible = self._decoration_for(annotation)
                if visible is not None:
                    self._emit(DecorationEvent(DecorationEventType.ADD, (visible,)))
        return annotation

    def activate(self, annotation_id: str) -> bool:
        """Notify listeners that the user selected a rendered annotation."""
        annotation = self.store.get(annotation_id)
        if annotation is None or annotation.resolved:
            return False
        for listener in list(self._activation_listeners):
            listener(annotation_id)
        return True

    def scroll_target(self, annotation_id: str) -> Decoration | None:
        """Return the span to scroll to and highlight for an annotation."""
        annotation = self.store.get(annotation_id)
        if annotation is None or annotation.resolved:
            return None
        return self._decoration_for(annotation)

    def decorations(self) -> list[Decoration]:
        """Current decorations for every active annotation."""
        decorations: list[Decoration] = []
        for annotation in self.store.active():
            decoration = self._decoration_for(annotation)
            if decoration is not None:
                decorations.append(decoration)
        return decorations

    def locate_passage(self, text: str) -> LocateResult:
        return self.matcher.locate_passage(self.store.document_text, text)

    def _decoration_for(self, annotation: Annotation[Any]) -> Decoration | None:
        """Clamp an anchor to the document.

        Zero-length anchors render as a point. Anchors that start past the end
        of the text, or that clamping reduces to nothing, are not rendered.
        """
        length = len(self.store.document_text)
        anchor = annotation.anchor
        if anchor.start > length:
            return None
        span = anchor.clamp(length)
        if span.start == span.end and anchor.start != anchor.end:
            return None
        return Decoration(annotation.annotation_id, span.start, span.end)

    def _emit(self, event: DecorationEvent) -> None:
        logger.debug(
            "decorations_changed",
            extra={"type": event.type.value, "count": len(event.decorations)},
        )
        for listener in list(self._decoration_listeners):
            listener(event)


def _discard(listeners: list, listener: object) -> None:
    if listener in listeners:
        listeners.remove(listener)
