from __future__ import annotations

import httpx
import pytest
from prometheus_client import REGISTRY

from reanchor.app.dependencies import reset_workspace_cache
from reanchor.app.main import app

pytestmark = pytest.mark.anyio

ORIGINAL = "The cat sat. The dog ran."


def get_client() -> httpx.AsyncClient:
    reset_workspace_cache()
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


async def create_document(client: httpx.AsyncClient, text: str = ORIGINAL) -> None:
    response = await client.put("/documents/doc", json={"content": text})
    assert response.status_code == 200


async def test_health_endpoint() -> None:
    async with get_client() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_request_id_is_echoed() -> None:
    async with get_client() as client:
        response = await client.get("/health", headers={"X-Request-ID": "req-1"})
        generated = await client.get("/health")
    assert response.headers["X-Request-ID"] == "req-1"
    assert generated.headers["X-Request-ID"]


async def test_unknown_document_returns_404() -> None:
    async with get_client() as client:
        response = await client.get("/documents/missing")
        locate = await client.post("/documents/missing/locate", json={"text": "x"})
    assert response.status_code == 404
    assert locate.status_code == 404


async def test_create_annotation_and_refresh_on_edit() -> None:
    async with get_client() as client:
        created = await client.put("/documents/doc", json={"content": ORIGINAL})
        assert created.json() == {
            "document_id": "doc",
            "state": "idle",
            "annotations": [],
            "decorations": [],
        }
        response = await client.post(
            "/documents/doc/annotations",
            json={"annotation_id": "c1", "start": 13, "end": 25, "metadata": {"comment": "dog"}},
        )
        assert response.status_code == 201
        payload = response.json()
        assert payload["selected_text"] == "The dog ran."
        assert payload["metadata"] == {"comment": "dog"}
        assert payload["stale"] is False

        updated = await client.put(
            "/documents/doc", json={"content": "The cat sat happily. The dog ran."}
        )
    assert updated.status_code == 200
    state = updated.json()
    assert state["annotations"][0]["start"] == 21
    assert state["annotations"][0]["end"] == 33
    assert state["decorations"] == [{"id": "c1", "from": 21, "to": 33}]


async def test_create_annotation_errors() -> None:
    async with get_client() as client:
        await create_document(client)
        first = await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 0, "end": 12}
        )
        duplicate = await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        invalid = await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c2", "start": 10, "end": 100}
        )
        generated = await client.post("/documents/doc/annotations", json={"start": 0, "end": 3})
    assert first.status_code == 201
    assert duplicate.status_code == 409
    assert invalid.status_code == 400
    assert generated.status_code == 201
    assert generated.json()["annotation_id"]


async def test_stale_annotation_survives_deletion_of_text() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        response = await client.put("/documents/doc", json={"content": "The cat sat."})
    state = response.json()
    assert state["annotations"][0]["start"] == 13
    assert state["annotations"][0]["stale"] is True
    assert state["decorations"] == []


async def test_locate_and_match() -> None:
    async with get_client() as client:
        await create_document(client, "Intro. **The dog** ran fast.")
        located = await client.post("/documents/doc/locate", json={"text": "The dog ran"})
        missing = await client.post("/documents/doc/locate", json={"text": "unrelated words here"})
        await create_document(client)
        matched = await client.post("/documents/doc/match", json={"text": "dog ran"})
    assert located.json() == {"start": 9, "end": 22, "found": True, "strategy": "normalized"}
    assert missing.json() == {"start": -1, "end": -1, "found": False, "strategy": None}
    assert matched.json() == {"start": 17, "end": 24, "similarity": 1.0, "found": True}


async def test_delete_resolve_and_activate() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c2", "start": 0, "end": 12}
        )
        activated = await client.post("/documents/doc/annotations/c1/activate")
        resolved = await client.post("/documents/doc/annotations/c1/resolve", json={})
        unknown = await client.post("/documents/doc/annotations/zz/resolve", json={})
        state = await client.get("/documents/doc")
        first_delete = await client.delete("/documents/doc/annotations/c2")
        second_delete = await client.delete("/documents/doc/annotations/c2")
    assert activated.json() == {
        "activated": True,
        "decoration": {"id": "c1", "from": 13, "to": 25},
    }
    assert resolved.json()["resolved"] is True
    assert unknown.status_code == 404
    assert state.json()["decorations"] == [{"id": "c2", "from": 0, "to": 12}]
    assert first_delete.json() == {"removed": True}
    assert second_delete.json() == {"removed": False}


async def test_review_findings_are_anchored() -> None:
    async with get_client() as client:
        await create_document(client)
        response = await client.post(
            "/documents/doc/review",
            json={
                "findings": [
                    {
                        "problematic_text": "dog ran",
                        "comment": "Use a stronger verb.",
                        "issue_type": "tone",
                        "suggestion": "dog sprinted",
                    },
                    {"problematic_text": "not in the text", "comment": "Unclear."},
                ]
            },
        )
    assert response.status_code == 200
    payload = response.json()
    assert payload["created"] == 1
    assert payload["failed"] == 1
    annotation = payload["annotations"][0]
    assert (annotation["start"], annotation["end"]) == (17, 24)
    assert annotation["metadata"]["ai_generated"] is True
    assert payload["failures"][0]["reason"] == "Text not found in document"


async def test_accept_and_undo_suggestion() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        accepted = await client.post(
            "/documents/doc/annotations/c1/accept", json={"suggestion": "The dog sprinted."}
        )
        undone = await client.post("/documents/doc/undo")
        nothing = await client.post("/documents/doc/undo")
        unknown = await client.post(
            "/documents/doc/annotations/zz/accept", json={"suggestion": "x"}
        )
    payload = accepted.json()
    assert payload["applied"] is True
    assert payload["strategy"] == "anchor"
    assert payload["content"] == "The cat sat. The dog sprinted."
    assert undone.json() == {"undone": True, "annotation_id": "c1", "content": ORIGINAL}
    assert nothing.json()["undone"] is False
    assert unknown.status_code == 404


async def test_cleanup_removes_outdated_annotations() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c2", "start": 0, "end": 12}
        )
        await client.put("/documents/doc", json={"content": "The cat sat."})
        response = await client.post("/documents/doc/cleanup", json={})
        state = await client.get("/documents/doc")
    assert response.json() == {"removed": ["c1"]}
    assert [item["annotation_id"] for item in state.json()["annotations"]] == ["c2"]


async def test_suggest_with_noop_provider() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        response = await client.post("/documents/doc/annotations/c1/suggest", json={})
        unknown = await client.post("/documents/doc/annotations/zz/suggest", json={})
    assert response.status_code == 200
    assert response.json() == {"annotation_id": "c1", "suggestion": "The dog ran."}
    assert unknown.status_code == 404


async def test_metrics_endpoint() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post("/documents/doc/locate", json={"text": "dog"})
        response = await client.get("/metrics")
    assert response.status_code == 200
    assert "passage_locate_total" in response.text
    assert "http_requests_total" in response.text


def refresh_counts() -> dict[str, float]:
    return {
        outcome: REGISTRY.get_sample_value("anchor_refresh_total", {"outcome": outcome}) or 0.0
        for outcome in ("relocated", "unchanged", "stale")
    }


async def test_refresh_metrics_follow_real_text_changes() -> None:
    async with get_client() as client:
        await create_document(client)
        await client.post(
            "/documents/doc/annotations", json={"annotation_id": "c1", "start": 13, "end": 25}
        )
        before = refresh_counts()
        await create_document(client)
        unchanged_text = refresh_counts()
        await create_document(client, ORIGINAL + " More.")
        appended = refresh_counts()
        await create_document(client, "Intro. " + ORIGINAL + " More.")
        moved = refresh_counts()
    assert unchanged_text == before
    assert appended["unchanged"] == before["unchanged"] + 1
    assert appended["relocated"] == before["relocated"]
    assert moved["relocated"] == appended["relocated"] + 1
    assert moved["unchanged"] == appended["unchanged"]
