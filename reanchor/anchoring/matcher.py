from __future__ import annotations

"""Approximate passage matching for re-anchoring annotations."""

import logging
import re
from dataclasses import dataclass

from reanchor.anchoring.text_index import TextIndex, slice_words, strip_markdown
from reanchor.anchoring.types import NO_MATCH, NOT_FOUND, LocateResult, MatchResult

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\S+")
# Whitespace or emphasis markers allowed between two words of a normalized passage.
_MARKUP_GAP = r"[\s*_~`]+"


@dataclass(frozen=True)
class FuzzyMatcher:
    """Word-overlap matcher with a sliding window scan and lookup fallbacks."""
    early_exit_threshold: float = 0.9
    window_offsets: tuple[int, ...] = (0, 10, 20, -5)
    min_window: int = 5
    prefix_ratio: float = 0.8
    min_prefix_chars: int = 5
    word_sequence_ratio: float = 0.8
    min_sequence_words: int = 3

    def window_lengths(self, target_length: int) -> list[int]:
        """Return candidate window lengths in scan order, without duplicates."""
        lengths: list[int] = []
        for offset in self.window_offsets:
            length = max(self.min_window, target_length + offset)
            if length not in lengths:
                lengths.append(length)
        return lengths

    def find_best_match(
        self,
        document: str | TextIndex,
        target_text: str,
        prior_start: int | None = None,
        prior_end: int | None = None,
    ) -> MatchResult:
        """Find the span of ``document`` that best matches ``target_text``.

        Verbatim occurrences win outright with similarity 1.0. Otherwise every
        window length is slid across the document and scored by the share of
        distinct target words the window contains. Equal scores are settled by
        distance to the prior span's center when one is given, else by scan
        order. The scan stops as soon as a window reaches the early exit
        threshold.
        """
        if not target_text:
            return NO_MATCH
        target_words = set(slice_words(target_text))
        if not target_words:
            return NO_MATCH
        text = document.text if isinstance(document, TextIndex) else document
        prior_center = _prior_center(prior_start, prior_end)

        exact_start = _closest_occurrence(text, target_text, prior_center)
        if exact_start is not None:
            return MatchResult(
                start=exact_start,
                end=exact_start + len(target_text),
                similarity=1.0,
            )

        best = NO_MATCH
        length = len(text)
        for window in self.window_lengths(len(target_text)):
            for pos in range(0, length - window + 1):
                current = set(slice_words(text[pos : pos + window]))
                overlap = len(target_words & current)
                if not overlap:
                    continue
                candidate = MatchResult(
                    start=pos,
                    end=pos + window,
                    similarity=overlap / len(target_words),
                )
                if _is_better(candidate, best, prior_center):
                    best = candidate
                    if best.similarity >= self.early_exit_threshold:
                        return best
        return best

    def locate_passage(self, document: str | TextIndex, passage: str) -> LocateResult:
        """Find a passage for placing a new annotation or applying a replacement."""
        text = document.text if isinstance(document, TextIndex) else document
        if not passage or not passage.strip():
            return NOT_FOUND
        idx = text.find(passage)
        if idx != -1:
            return LocateResult(start=idx, end=idx + len(passage), strategy="exact")
        for strategy, search in (
            ("normalized", self._search_normalized),
            ("prefix", self._search_prefix),
            ("word_sequence", self._search_word_sequence),
        ):
            span = search(text, passage)
            if span is not None:
                return LocateResult(start=span[0], end=span[1], strategy=strategy)
        logger.info("passage_not_found", extra={"passage_chars": len(passage)})
        return NOT_FOUND

    def _search_normalized(self, text: str, passage: str) -> tuple[int, int] | None:
        """Match the markdown-stripped passage, tolerating whitespace and markers."""
        words = strip_markdown(passage).split()
        if not words:
            return None
        pattern = _MARKUP_GAP.join(re.escape(word) for word in words)
        match = re.search(pattern, text)
        if match is None:
            return None
        return match.start(), match.end()

    def _search_prefix(self, text: str, passage: str) -> tuple[int, int] | None:
        """Match the leading part of the passage and extend to its full length."""
        prefix_len = int(len(passage) * self.prefix_ratio)
        if prefix_len < self.min_prefix_chars or prefix_len >= len(passage):
            return None
        idx = text.find(passage[:prefix_len])
        if idx == -1:
            return None
        return idx, min(idx + len(passage), len(text))

    def _search_word_sequence(self, text: str, passage: str) -> tuple[int, int] | None:
        """Match a contiguous run of words where most positions agree."""
        expected = [word.lower() for word in passage.split()]
        count = len(expected)
        if count < self.min_sequence_words:
            return None
        tokens = [(match.start(), match.end(), match.group().lower()) for match in _TOKEN_RE.finditer(text)]
        required = count * self.word_sequence_ratio
        for i in range(len(tokens) - count + 1):
            window = tokens[i : i + count]
            matching = sum(
                1
                for (_, _, word), target in zip(window, expected)
                if target in word or word in target
            )
            if matching >= required:
                return window[0][0], window[-1][1]
        return None


def _prior_center(prior_start: int | None, prior_end: int | None) -> float | None:
    if prior_start is None or prior_end is None or prior_start < 0 or prior_end < 0:
        return None
    return (prior_start + prior_end) / 2


def _closest_occurrence(text: str, target: str, prior_center: float | None) -> int | None:
    """Return the start of the verbatim occurrence nearest the prior center."""
    idx = text.find(target)
    if idx == -1 or prior_center is None:
        return None if idx == -1 else idx
    best = idx
    best_distance = abs(idx + len(target) / 2 - prior_center)
    while True:
        idx = text.find(target, idx + 1)
        if idx == -1:
            return best
        distance = abs(idx + len(target) / 2 - prior_center)
        if distance < best_distance:
            best, best_distance = idx, distance


def _is_better(candidate: MatchResult, best: MatchResult, prior_center: float | None) -> bool:
    if candidate.similarity > best.similarity:
        return True
    if candidate.similarity < best.similarity or prior_center is None:
        return False
    current = abs((best.start + best.end) / 2 - prior_center)
    return abs((candidate.start + candidate.end) / 2 - prior_center) < current
