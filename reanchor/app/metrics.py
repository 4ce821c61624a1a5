from __future__ import annotations

import time
from typing import Mapping

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from reanchor.anchoring.store import AnchorStore
from reanchor.anchoring.types import Span
from reanchor.app.settings import settings

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
ANCHOR_REFRESH_COUNT = Counter(
    "anchor_refresh_total",
    "Annotations processed by refresh passes",
    ["outcome"],
)
LOCATE_COUNT = Counter(
    "passage_locate_total",
    "Passage lookups by the strategy that found them",
    ["strategy"],
)


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    path_label = path
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        route = request.scope.get("route")
        path_label = getattr(route, "path", path)
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, path_label, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, path_label).observe(duration)


def anchor_snapshot(store: AnchorStore) -> dict[str, Span]:
    """Capture current anchors so a later refresh can be classified."""
    return {annotation.annotation_id: annotation.anchor for annotation in store.annotations()}


def record_refresh(store: AnchorStore, previous: Mapping[str, Span]) -> None:
    """Count refresh outcomes against the anchors held before the refresh."""
    if not settings.metrics_enabled:
        return
    for annotation in store.annotations():
        if annotation.resolved or not annotation.selected_text:
            outcome = "skipped"
        elif store.is_stale(annotation):
            outcome = "stale"
        elif previous.get(annotation.annotation_id) == annotation.anchor:
            outcome = "unchanged"
        else:
            outcome = "relocated"
        ANCHOR_REFRESH_COUNT.labels(outcome).inc()


def record_locate(strategy: str | None) -> None:
    if not settings.metrics_enabled:
        return
    LOCATE_COUNT.labels(strategy or "not_found").inc()


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
