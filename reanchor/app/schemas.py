from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class DocumentUpdateRequest(BaseModel):
    content: str


class AnnotationCreateRequest(BaseModel):
    annotation_id: str | None = None
    start: int
    end: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class AnnotationResponse(BaseModel):
    annotation_id: str
    selected_text: str
    start: int
    end: int
    similarity: float
    resolved: bool
    stale: bool
    metadata: dict[str, Any] | None = None


class DecorationModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_: int = Field(alias="from")
    to: int


class DocumentStateResponse(BaseModel):
    document_id: str
    state: str
    annotations: list[AnnotationResponse]
    decorations: list[DecorationModel]


class RemoveResponse(BaseModel):
    removed: bool


class ResolveRequest(BaseModel):
    resolved: bool = True


class ActivateResponse(BaseModel):
    activated: bool
    decoration: DecorationModel | None = None


class LocateRequest(BaseModel):
    text: str = Field(min_length=1)


class LocateResponse(BaseModel):
    start: int
    end: int
    found: bool
    strategy: str | None = None


class MatchRequest(BaseModel):
    text: str = Field(min_length=1)
    prior_start: int | None = Field(default=None, ge=0)
    prior_end: int | None = Field(default=None, ge=0)


class MatchResponse(BaseModel):
    start: int
    end: int
    similarity: float
    found: bool


class ReviewFindingModel(BaseModel):
    problematic_text: str = Field(min_length=1)
    comment: str = Field(min_length=1)
    issue_type: Literal["grammar", "logic", "accuracy", "tone", "clarity"] = "clarity"
    severity: Literal["high", "medium", "low"] = "medium"
    suggestion: str | None = None


class ReviewRequest(BaseModel):
    findings: list[ReviewFindingModel]


class FailedFindingModel(BaseModel):
    issue_type: str
    text: str
    reason: str


class ReviewResponse(BaseModel):
    created: int
    failed: int
    annotations: list[AnnotationResponse]
    failures: list[FailedFindingModel]


class SuggestRequest(BaseModel):
    context: str | None = None


class SuggestResponse(BaseModel):
    annotation_id: str
    suggestion: str


class AcceptRequest(BaseModel):
    suggestion: str


class AcceptResponse(BaseModel):
    applied: bool
    annotation_id: str
    start: int
    end: int
    strategy: str | None = None
    detail: str | None = None
    content: str


class UndoResponse(BaseModel):
    undone: bool
    annotation_id: str | None = None
    content: str


class CleanupRequest(BaseModel):
    annotation_ids: list[str] | None = None


class CleanupResponse(BaseModel):
    removed: list[str]
