from __future__ import annotations

"""FastAPI application entrypoint for the annotation re-anchoring service."""

import logging
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from reanchor.anchoring.store import AnchorStore, DuplicateIdError, InvalidRangeError
from reanchor.anchoring.types import Annotation, Decoration
from reanchor.app.dependencies import get_replacement_provider, get_workspace
from reanchor.app.metrics import (
    anchor_snapshot,
    metrics_middleware,
    metrics_response,
    record_locate,
    record_refresh,
)
from reanchor.app.schemas import (
    AcceptRequest,
    AcceptResponse,
    ActivateResponse,
    AnnotationCreateRequest,
    AnnotationResponse,
    CleanupRequest,
    CleanupResponse,
    DecorationModel,
    DocumentStateResponse,
    DocumentUpdateRequest,
    FailedFindingModel,
    LocateRequest,
    LocateResponse,
    MatchRequest,
    MatchResponse,
    RemoveResponse,
    ResolveRequest,
    ReviewRequest,
    ReviewResponse,
    SuggestRequest,
    SuggestResponse,
    UndoResponse,
)
from reanchor.app.settings import settings
from reanchor.documents.store import DocumentNotFoundError
from reanchor.documents.workspace import DocumentSession
from reanchor.suggestions.providers import ReplacementError
from reanchor.suggestions.service import ReviewFinding, SuggestionError

logger = logging.getLogger(__name__)

app = FastAPI(title="Reanchor", version="0.1.0")


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _session_or_404(document_id: str) -> DocumentSession:
    try:
        return get_workspace().session(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc


def _annotation_response(store: AnchorStore, annotation: Annotation[Any]) -> AnnotationResponse:
    return AnnotationResponse(
        annotation_id=annotation.annotation_id,
        selected_text=annotation.selected_text,
        start=annotation.anchor.start,
        end=annotation.anchor.end,
        similarity=annotation.similarity,
        resolved=annotation.resolved,
        stale=store.is_stale(annotation),
        metadata=annotation.metadata,
    )


def _decoration_model(decoration: Decoration) -> DecorationModel:
    return DecorationModel(id=decoration.annotation_id, from_=decoration.start, to=decoration.end)


def _document_state(session: DocumentSession) -> DocumentStateResponse:
    controller = session.controller
    return DocumentStateResponse(
        document_id=session.document_id,
        state=controller.state.value,
        annotations=[
            _annotation_response(controller.store, annotation)
            for annotation in controller.store.annotations()
        ],
        decorations=[_decoration_model(decoration) for decoration in controller.decorations()],
    )


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", str(uuid.uuid4()))


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health probe for uptime checks."""
    return {"status": "ok"}


@app.put("/documents/{document_id}", response_model=DocumentStateResponse)
async def put_document(
    document_id: str, request: DocumentUpdateRequest, http_request: Request
) -> DocumentStateResponse:
    """Create or replace document text and re-anchor its annotations."""
    workspace = get_workspace()
    existing = workspace.sessions.get(document_id)
    previous = anchor_snapshot(existing.controller.store) if existing else {}
    changed = workspace.documents.set_document_text(document_id, request.content)
    session = workspace.session(document_id)
    store = session.controller.store
    if changed and existing is not None:
        record_refresh(store, previous)
    logger.info(
        "document_updated",
        extra={
            "request_id": _request_id(http_request),
            "document_id": document_id,
            "changed": changed,
            "annotations": len(store),
        },
    )
    return _document_state(session)


@app.get("/documents/{document_id}", response_model=DocumentStateResponse)
async def get_document(document_id: str) -> DocumentStateResponse:
    """Return annotations, decorations and controller state for a document."""
    return _document_state(_session_or_404(document_id))


@app.post(
    "/documents/{document_id}/annotations",
    response_model=AnnotationResponse,
    status_code=201,
)
async def create_annotation(
    document_id: str, request: AnnotationCreateRequest
) -> AnnotationResponse:
    """Attach an annotation to an exact span of the current text."""
    controller = _session_or_404(document_id).controller
    annotation_id = request.annotation_id or uuid.uuid4().hex
    try:
        annotation = controller.on_annotation_created(
            annotation_id,
            request.start,
            request.end,
            dict(request.metadata),
        )
    except DuplicateIdError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidRangeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _annotation_response(controller.store, annotation)


@app.delete(
    "/documents/{document_id}/annotations/{annotation_id}",
    response_model=RemoveResponse,
)
async def delete_annotation(document_id: str, annotation_id: str) -> RemoveResponse:
    """Remove an annotation; removing an unknown ID is not an error."""
    controller = _session_or_404(document_id).controller
    return RemoveResponse(removed=controller.on_annotation_removed(annotation_id))


@app.post(
    "/documents/{document_id}/annotations/{annotation_id}/resolve",
    response_model=AnnotationResponse,
)
async def resolve_annotation(
    document_id: str, annotation_id: str, request: ResolveRequest
) -> AnnotationResponse:
    """Resolve or reopen an annotation."""
    controller = _session_or_404(document_id).controller
    annotation = controller.resolve(annotation_id, request.resolved)
    if annotation is None:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return _annotation_response(controller.store, annotation)


@app.post(
    "/documents/{document_id}/annotations/{annotation_id}/activate",
    response_model=ActivateResponse,
)
async def activate_annotation(document_id: str, annotation_id: str) -> ActivateResponse:
    """Select an annotation and return the span to scroll to."""
    controller = _session_or_404(document_id).controller
    activated = controller.activate(annotation_id)
    decoration = controller.scroll_target(annotation_id) if activated else None
    return ActivateResponse(
        activated=activated,
        decoration=_decoration_model(decoration) if decoration else None,
    )


@app.post("/documents/{document_id}/locate", response_model=LocateResponse)
async def locate(document_id: str, request: LocateRequest) -> LocateResponse:
    """Find a passage in the current text using the fallback ladder."""
    controller = _session_or_404(document_id).controller
    result = controller.locate_passage(request.text)
    record_locate(result.strategy)
    return LocateResponse(
        start=result.start,
        end=result.end,
        found=result.found,
        strategy=result.strategy,
    )


@app.post("/documents/{document_id}/match", response_model=MatchResponse)
async def match(document_id: str, request: MatchRequest) -> MatchResponse:
    """Score the best approximate match for a passage."""
    controller = _session_or_404(document_id).controller
    result = controller.matcher.find_best_match(
        controller.document_text,
        request.text,
        request.prior_start,
        request.prior_end,
    )
    return MatchResponse(
        start=result.start,
        end=result.end,
        similarity=result.similarity,
        found=result.found,
    )


@app.post("/documents/{document_id}/review", response_model=ReviewResponse)
async def review(
    document_id: str, request: ReviewRequest, http_request: Request
) -> ReviewResponse:
    """Anchor AI review findings as annotations."""
    session = _session_or_404(document_id)
    findings = [
        ReviewFinding(
            problematic_text=finding.problematic_text,
            comment=finding.comment,
            issue_type=finding.issue_type,
            severity=finding.severity,
            suggestion=finding.suggestion,
        )
        for finding in request.findings
    ]
    result = session.suggestions.create_review_comments(findings)
    logger.info(
        "review_anchored",
        extra={
            "request_id": _request_id(http_request),
            "document_id": document_id,
            "created_count": len(result.created),
            "failed": len(result.failed),
        },
    )
    store = session.controller.store
    return ReviewResponse(
        created=len(result.created),
        failed=len(result.failed),
        annotations=[_annotation_response(store, annotation) for annotation in result.created],
        failures=[FailedFindingModel(**failure.__dict__) for failure in result.failed],
    )


@app.post(
    "/documents/{document_id}/annotations/{annotation_id}/suggest",
    response_model=SuggestResponse,
)
async def suggest(
    document_id: str,
    annotation_id: str,
    request: SuggestRequest,
    http_request: Request,
) -> SuggestResponse:
    """Ask the configured provider for replacement text."""
    session = _session_or_404(document_id)
    try:
        provider = get_replacement_provider()
        suggestion = await session.suggestions.suggest_replacement(
            annotation_id, provider, context=request.context
        )
    except SuggestionError as exc:
        raise HTTPException(status_code=404, detail="Annotation not found") from exc
    except ReplacementError as exc:
        logger.error(
            "replacement_request_failed",
            extra={"request_id": _request_id(http_request), "detail": type(exc).__name__},
        )
        raise HTTPException(status_code=502, detail="Replacement provider failed") from exc
    return SuggestResponse(annotation_id=annotation_id, suggestion=suggestion)


@app.post(
    "/documents/{document_id}/annotations/{annotation_id}/accept",
    response_model=AcceptResponse,
)
async def accept(document_id: str, annotation_id: str, request: AcceptRequest) -> AcceptResponse:
    """Apply a suggestion to the document and resolve its annotation."""
    session = _session_or_404(document_id)
    store = session.controller.store
    previous = anchor_snapshot(store)
    try:
        outcome = session.suggestions.apply_suggestion(annotation_id, request.suggestion)
    except SuggestionError as exc:
        raise HTTPException(status_code=404, detail="Annotation not found") from exc
    record_locate(outcome.strategy)
    if outcome.applied:
        record_refresh(store, previous)
    return AcceptResponse(
        applied=outcome.applied,
        annotation_id=outcome.annotation_id,
        start=outcome.start,
        end=outcome.end,
        strategy=outcome.strategy,
        detail=outcome.detail,
        content=session.controller.document_text,
    )


@app.post("/documents/{document_id}/undo", response_model=UndoResponse)
async def undo(document_id: str) -> UndoResponse:
    """Undo the most recently applied suggestion."""
    session = _session_or_404(document_id)
    entry = session.suggestions.undo_last_change()
    return UndoResponse(
        undone=entry is not None,
        annotation_id=entry.annotation_id if entry else None,
        content=session.controller.document_text,
    )


@app.post("/documents/{document_id}/cleanup", response_model=CleanupResponse)
async def cleanup(document_id: str, request: CleanupRequest) -> CleanupResponse:
    """Remove annotations whose text can no longer be found."""
    session = _session_or_404(document_id)
    removed = session.suggestions.cleanup_outdated(request.annotation_ids)
    return CleanupResponse(removed=removed)
