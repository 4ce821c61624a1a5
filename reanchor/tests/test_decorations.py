from __future__ import annotations

"""Decoration controller event and state tests."""

import threading
import time

import pytest

from reanchor.anchoring.decorations import ControllerState, DecorationController
from reanchor.anchoring.store import AnchorStore, DuplicateIdError
from reanchor.anchoring.types import Decoration, DecorationEvent, DecorationEventType

ORIGINAL = "The cat sat. The dog ran."


def build_controller() -> tuple[DecorationController, list[DecorationEvent]]:
    controller = DecorationController(AnchorStore(document_text=ORIGINAL))
    events: list[DecorationEvent] = []
    controller.on_decorations_changed(events.append)
    return controller, events


def test_created_annotation_emits_single_add() -> None:
    controller, events = build_controller()

    controller.on_annotation_created("c1", 13, 25, {"comment": "dog"})

    assert events == [
        DecorationEvent(DecorationEventType.ADD, (Decoration("c1", 13, 25),)),
    ]
    assert events[0].decorations[0].to_dict() == {"id": "c1", "from": 13, "to": 25}


def test_duplicate_creation_raises_and_emits_nothing() -> None:
    controller, events = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    events.clear()

    with pytest.raises(DuplicateIdError):
        controller.on_annotation_created("c1", 0, 12)

    assert events == []


def test_document_change_emits_full_refresh() -> None:
    controller, events = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    controller.on_annotation_created("c2", 0, 12)
    events.clear()

    event = controller.on_document_changed("The cat sat happily. The dog ran.")

    assert event.type is DecorationEventType.REFRESH
    assert set(event.decorations) == {Decoration("c1", 21, 33), Decoration("c2", 0, 12)}
    assert events == [event]
    assert controller.state is ControllerState.IDLE


def test_refresh_runs_while_dirty(monkeypatch: pytest.MonkeyPatch) -> None:
    controller, _ = build_controller()
    seen: list[ControllerState] = []
    original = controller.store.refresh_all

    def spy(text: str):
        seen.append(controller.state)
        return original(text)

    monkeypatch.setattr(controller.store, "refresh_all", spy)
    controller.on_document_changed("The dog ran.")

    assert seen == [ControllerState.DIRTY]
    assert controller.state is ControllerState.IDLE


def test_stale_anchor_outside_shrunken_document_is_not_rendered() -> None:
    controller, events = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    events.clear()

    event = controller.on_document_changed("The cat sat.")

    assert event.decorations == ()
    annotation = controller.store.get("c1")
    assert annotation is not None
    assert (annotation.anchor.start, annotation.anchor.end) == (13, 25)
    assert controller.store.is_stale(annotation)


def test_removal_emits_once() -> None:
    controller, events = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    events.clear()

    assert controller.on_annotation_removed("c1") is True
    assert controller.on_annotation_removed("c1") is False

    assert events == [
        DecorationEvent(DecorationEventType.REMOVE, (Decoration("c1", 13, 25),)),
    ]


def test_resolve_hides_and_reopen_restores_decoration() -> None:
    controller, events = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    events.clear()

    controller.resolve("c1")
    controller.resolve("c1")
    assert controller.decorations() == []
    controller.resolve("c1", resolved=False)

    assert [event.type for event in events] == [
        DecorationEventType.REMOVE,
        DecorationEventType.ADD,
    ]
    assert controller.decorations() == [Decoration("c1", 13, 25)]


def test_resolved_annotations_excluded_from_refresh_event() -> None:
    controller, _ = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    controller.on_annotation_created("c2", 0, 12)
    controller.resolve("c2")

    event = controller.on_document_changed("The cat sat happily. The dog ran.")

    assert event.decorations == (Decoration("c1", 21, 33),)
    assert len(controller.store) == 2


def test_activation_notifies_listeners() -> None:
    controller, _ = build_controller()
    controller.on_annotation_created("c1", 13, 25)
    activated: list[str] = []
    unsubscribe = controller.on_annotation_activated(activated.append)

    assert controller.activate("c1") is True
    assert controller.activate("missing") is False
    controller.resolve("c1")
    assert controller.activate("c1") is False
    unsubscribe()
    controller.resolve("c1", resolved=False)
    controller.activate("c1")

    assert activated == ["c1"]


def test_unsubscribed_listener_receives_nothing() -> None:
    controller = DecorationController(AnchorStore(document_text=ORIGINAL))
    events: list[DecorationEvent] = []
    unsubscribe = controller.on_decorations_changed(events.append)
    unsubscribe()
    unsubscribe()

    controller.on_annotation_created("c1", 0, 12)

    assert events == []


def test_scroll_target_and_locate() -> None:
    controller, _ = build_controller()
    controller.on_annotation_created("c1", 13, 25)

    assert controller.scroll_target("c1") == Decoration("c1", 13, 25)
    assert controller.scroll_target("missing") is None
    result = controller.locate_passage("dog ran")
    assert (result.start, result.end) == (17, 24)


def test_zero_length_annotation_emits_point_decoration() -> None:
    controller, events = build_controller()

    controller.on_annotation_created("c1", 4, 4)

    assert events == [DecorationEvent(DecorationEventType.ADD, (Decoration("c1", 4, 4),))]
    assert controller.decorations() == [Decoration("c1", 4, 4)]


def test_change_made_during_delivery_is_processed_after_it() -> None:
    controller = DecorationController(AnchorStore(document_text=ORIGINAL))
    controller.on_annotation_created("c1", 13, 25)
    nested: list[DecorationEvent | None] = []
    spans: list[list[tuple[int, int]]] = []

    def editor(_event: DecorationEvent) -> None:
        if not nested:
            nested.append(controller.on_document_changed("The cat sat gladly. The dog ran."))

    controller.on_decorations_changed(editor)
    controller.on_decorations_changed(
        lambda event: spans.append([(item.start, item.end) for item in event.decorations])
    )

    event = controller.on_document_changed("The cat sat happily. The dog ran.")

    assert nested == [None]
    assert spans == [[(21, 33)], [(20, 32)]]
    assert event.decorations == (Decoration("c1", 20, 32),)
    assert controller.document_text == "The cat sat gladly. The dog ran."
    assert controller.state is ControllerState.IDLE


def test_concurrent_changes_are_serialized() -> None:
    controller = DecorationController(AnchorStore(document_text=ORIGINAL))
    controller.on_annotation_created("c1", 13, 25)
    texts = ["The cat sat happily. The dog ran.", "Intro. The cat sat. The dog ran."]
    expected = {texts[0]: Decoration("c1", 21, 33), texts[1]: Decoration("c1", 20, 32)}
    guard = threading.Lock()
    active = [0]
    peak = [0]
    delivered: list[tuple[str, tuple[Decoration, ...]]] = []

    def listener(event: DecorationEvent) -> None:
        with guard:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
        time.sleep(0.01)
        delivered.append((controller.document_text, event.decorations))
        with guard:
            active[0] -= 1

    controller.on_decorations_changed(listener)
    barrier = threading.Barrier(len(texts))

    def worker(text: str) -> None:
        barrier.wait()
        controller.on_document_changed(text)

    threads = [threading.Thread(target=worker, args=(text,)) for text in texts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert peak[0] == 1
    assert sorted(text for text, _ in delivered) == sorted(texts)
    for text, decorations in delivered:
        assert decorations == (expected[text],)
    assert delivered[-1][0] == controller.document_text
    assert controller.decorations() == [expected[controller.document_text]]
