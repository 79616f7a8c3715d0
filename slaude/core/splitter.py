"""Boundary-safe splitting of long markdown text into two size-bounded halves.

The search is a heuristic, not a parser. Two passes run, the first refusing to
cut inside ``()[]{}`` pairs and the second allowing it. Each pass tries the
boundary categories below in priority order, scanning backward from the end of
the window; the first candidate that satisfies every constraint wins:

1. heading line starts, ``# `` through ``###### ``
2. paragraph break
3. newline
4. sentence punctuation at the end of a line (no cut inside ``*_~`` emphasis)
5. whitespace (no cut inside emphasis)

No category may cut inside an open fenced code block. When nothing qualifies
the text is cut at ``max_length`` exactly. Every split is lossless:
``left + right == text``.
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from slaude.core.events import SplitDecision

logger = logging.getLogger(__name__)

FENCE = "```"
EMPHASIS_MARKERS = "*_~"
SENTENCE_END = ".!?"
_CLOSING_BRACKETS = {")": "(", "]": "[", "}": "{"}
_OPENING_BRACKETS = frozenset(_CLOSING_BRACKETS.values())

# (text, limit) -> (match_start, split_index) for the rightmost match starting before limit
Finder = Callable[[str, int], Optional[tuple[int, int]]]


class _Spans:
    """Sorted, merged half-open ranges of forbidden split indexes."""

    def __init__(self, ranges: Iterable[tuple[int, int]]) -> None:
        merged: list[list[int]] = []
        for lo, hi in sorted(ranges):
            if hi <= lo:
                continue
            if merged and lo <= merged[-1][1]:
                merged[-1][1] = max(merged[-1][1], hi)
            else:
                merged.append([lo, hi])
        self._starts = [lo for lo, _ in merged]
        self._ends = [hi for _, hi in merged]

    def __contains__(self, index: int) -> bool:
        k = bisect_right(self._starts, index) - 1
        return k >= 0 and index < self._ends[k]


def _fence_ends(text: str) -> list[int]:
    ends = []
    pos = text.find(FENCE)
    while pos != -1:
        ends.append(pos + len(FENCE))
        pos = text.find(FENCE, pos + len(FENCE))
    return ends


def inside_code_block(text: str, index: int) -> bool:
    """True when an odd number of fences precede index."""
    return bisect_right(_fence_ends(text), index) % 2 == 1


def _emphasis_spans(text: str) -> _Spans:
    """Paired *, _ or ~ markers, single or doubled; a cut strictly inside a pair breaks it."""
    ranges = []
    i, n = 0, len(text)
    while i < n:
        c = text[i]
        if c not in EMPHASIS_MARKERS:
            i += 1
            continue
        run = 2 if i + 1 < n and text[i + 1] == c else 1
        close = text.find(c, i + run)
        if close == -1:
            i += run
            continue
        end = close + (2 if close + 1 < n and text[close + 1] == c else 1)
        ranges.append((i + 1, end))
        i = end
    return _Spans(ranges)


def _bracket_spans(text: str) -> _Spans:
    """Matched (), [] and {} pairs; a cut between opener and closer separates them."""
    ranges = []
    stack: list[tuple[str, int]] = []
    for i, c in enumerate(text):
        if c in _OPENING_BRACKETS:
            stack.append((c, i))
        elif c in _CLOSING_BRACKETS:
            opener = _CLOSING_BRACKETS[c]
            for depth in range(len(stack) - 1, -1, -1):
                if stack[depth][0] == opener:
                    ranges.append((stack[depth][1] + 1, i + 1))
                    del stack[depth:]
                    break
    return _Spans(ranges)


def _token_finder(token: str, split_offset: int) -> Finder:
    def find(text: str, limit: int) -> Optional[tuple[int, int]]:
        start = text.rfind(token, 0, limit + len(token) - 1)
        if start == -1:
            return None
        return start, start + split_offset

    return find


def _find_sentence_end(text: str, limit: int) -> Optional[tuple[int, int]]:
    n = len(text)
    for pos in range(min(limit, n) - 1, -1, -1):
        if text[pos] in SENTENCE_END and (pos + 1 == n or text[pos + 1] == "\n"):
            return pos, pos + 1
    return None


def _find_whitespace(text: str, limit: int) -> Optional[tuple[int, int]]:
    for pos in range(min(limit, len(text)) - 1, -1, -1):
        if text[pos].isspace():
            return pos, pos + 1
    return None


@dataclass(frozen=True)
class Boundary:
    """One boundary category in the search order."""

    name: str
    find: Finder
    allow_emphasis: bool


BOUNDARIES: tuple[Boundary, ...] = (
    *(
        Boundary(f"heading{depth}", _token_finder("\n" + "#" * depth + " ", 1), True)
        for depth in range(1, 7)
    ),
    Boundary("paragraph", _token_finder("\n\n", 2), True),
    Boundary("newline", _token_finder("\n", 1), True),
    Boundary("sentence", _find_sentence_end, False),
    Boundary("whitespace", _find_whitespace, False),
)


class BoundarySafeSplitter:
    """Split search over one text. Fence, emphasis and bracket indexes are built once."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._fence_ends = _fence_ends(text)
        self._emphasis = _emphasis_spans(text)
        self._brackets = _bracket_spans(text)

    def _allowed(
        self, index: int, boundary: Boundary, allow_delimiters: bool
    ) -> bool:
        if bisect_right(self._fence_ends, index) % 2 == 1:
            return False
        if not boundary.allow_emphasis and index in self._emphasis:
            return False
        if not allow_delimiters and index in self._brackets:
            return False
        return True

    def search(
        self, boundary: Boundary, min_length: int, max_length: int, allow_delimiters: bool
    ) -> Optional[int]:
        """Rightmost valid split index for one category, or None when exhausted."""
        limit = min(len(self.text), max_length + 1)
        while limit > 0:
            found = boundary.find(self.text, limit)
            if found is None:
                return None
            start, index = found
            if index <= min_length:
                return None
            if index <= max_length and self._allowed(index, boundary, allow_delimiters):
                return index
            limit = start
        return None

    def split(self, max_length: int, min_length: int = 0) -> SplitDecision:
        for allow_delimiters in (False, True):
            for boundary in BOUNDARIES:
                index = self.search(boundary, min_length, max_length, allow_delimiters)
                if index is not None:
                    logger.debug(
                        "split at %s boundary",
                        boundary.name,
                        extra={"index": index, "allow_delimiters": allow_delimiters},
                    )
                    return SplitDecision(self.text[:index], self.text[index:])
        cut = max(max_length, 0)
        logger.debug("no safe boundary, hard cut", extra={"index": cut})
        return SplitDecision(self.text[:cut], self.text[cut:])


def split_text(text: str, max_length: int, min_length: int = 500) -> SplitDecision:
    """Split text in two with len(left) in (min_length, max_length] whenever a safe boundary exists."""
    return BoundarySafeSplitter(text).split(max_length, min_length)
