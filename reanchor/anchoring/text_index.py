from __future__ import annotations

"""Text normalization and tokenization used as the matching substrate."""

import re
from dataclasses import dataclass

_WHITESPACE_RE = re.compile(r"\s+")
_COMMENT_DIRECTIVE_RE = re.compile(r":comment\[([^\]]*)\]\{[^}]*\}")
_LINK_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_LINE_PREFIX_RE = re.compile(r"^[ \t]{0,3}(?:#{1,6}|>|[-+*]|\d+[.)])[ \t]+", re.MULTILINE)
_EDGE_MARK_RE = re.compile(r"(?<!\w)[*_~`]+|[*_~`]+(?!\w)")


def slice_words(text: str) -> list[str]:
    """Lowercase text and split it on whitespace runs."""
    return text.lower().split()


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs and line endings into single spaces."""
    return _WHITESPACE_RE.sub(" ", text.replace("\r\n", "\n")).strip()


def strip_markdown(text: str) -> str:
    """Remove inline markdown syntax while keeping the visible words."""
    cleaned = _COMMENT_DIRECTIVE_RE.sub(r"\1", text)
    cleaned = _LINK_RE.sub(r"\1", cleaned)
    cleaned = _LINE_PREFIX_RE.sub("", cleaned)
    cleaned = _EDGE_MARK_RE.sub("", cleaned)
    return normalize_whitespace(cleaned)


@dataclass(frozen=True)
class TextIndex:
    """Snapshot of a document's text and its word tokens."""
    text: str
    words: tuple[str, ...]

    @classmethod
    def build(cls, document_text: str) -> TextIndex:
        return cls(text=document_text, words=tuple(slice_words(document_text)))

    def __len__(self) -> int:
        return len(self.text)

    def text_between(self, start: int, end: int) -> str:
        """Return the substring between two offsets, clamped to the document."""
        length = len(self.text)
        start = min(max(start, 0), length)
        end = min(max(end, start), length)
        return self.text[start:end]
