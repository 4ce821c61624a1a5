from __future__ import annotations

from functools import lru_cache

from reanchor.anchoring.matcher import FuzzyMatcher
from reanchor.app.settings import settings
from reanchor.documents.store import InMemoryDocumentStore
from reanchor.documents.workspace import AnnotationWorkspace
from reanchor.suggestions.providers import ReplacementProvider, build_replacement_provider


def build_matcher() -> FuzzyMatcher:
    return FuzzyMatcher(
        early_exit_threshold=settings.early_exit_threshold,
        window_offsets=settings.window_offsets,
        min_window=settings.min_window,
        prefix_ratio=settings.prefix_ratio,
        word_sequence_ratio=settings.word_sequence_ratio,
        min_sequence_words=settings.min_sequence_words,
    )


@lru_cache
def get_workspace() -> AnnotationWorkspace:
    return AnnotationWorkspace(
        documents=InMemoryDocumentStore(),
        matcher=build_matcher(),
        refresh_threshold=settings.refresh_threshold,
        undo_limit=settings.undo_limit,
        context_chars=settings.context_chars,
    )


def reset_workspace_cache() -> None:
    get_workspace.cache_clear()
    get_replacement_provider.cache_clear()


@lru_cache
def get_replacement_provider() -> ReplacementProvider:
    return build_replacement_provider()
