"""Weighted multi-keyword ranking over a :class:`SearchIndex`.

Scoring
-------
For every keyword and every field, the first occurrence of the keyword earns
the field's base weight from :data:`FIELD_WEIGHTS`, multiplied by 1.5 when the
occurrence is delimited by non-word characters (or the field edges), and by a
further 2 when it starts the title or author field.  An entry's score is the
sum over its matched keywords, multiplied by 1.5 when a multi-keyword query is
matched in full.  Entries matching no keyword are dropped; the rest are sorted
by descending score with ties kept in corpus order.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from bibnotes.common.entities import Entry
from bibnotes.search.search_index import (
    FIELD_WEIGHTS,
    LEADING_MATCH_FIELDS,
    SearchableEntry,
    SearchIndex,
    fold_case,
)

logger = logging.getLogger(__name__)

MAX_RESULTS = 50
BOUNDARY_MULTIPLIER = 1.5
LEADING_MULTIPLIER = 2.0
ALL_KEYWORDS_MULTIPLIER = 1.5

_WORD_CHARS = frozenset(string.ascii_letters + string.digits + "_")

Span = tuple[int, int]


@dataclass(frozen=True)
class SearchResult:
    entry: Entry
    score: float
    spans: dict[str, list[Span]] = field(default_factory=dict)


def normalize_query(query: str) -> list[str]:
    return fold_case(query).strip().split()


def is_boundary_match(text: str, index: int, length: int) -> bool:
    before = index == 0 or text[index - 1] not in _WORD_CHARS
    end = index + length
    after = end >= len(text) or text[end] not in _WORD_CHARS
    return before and after


def occurrences(text: str, keyword: str) -> list[Span]:
    """Every (possibly overlapping) occurrence of *keyword* in *text*."""
    spans: list[Span] = []
    position = text.find(keyword)
    while position != -1:
        spans.append((position, position + len(keyword)))
        position = text.find(keyword, position + 1)
    return spans


def merge_spans(spans: Sequence[Span]) -> list[Span]:
    """Sort spans and merge the ones that overlap or touch."""
    merged: list[list[int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return [(start, end) for start, end in merged]


def score_entry(item: SearchableEntry, keywords: Sequence[str]) -> tuple[float, dict[str, list[Span]]]:
    """Score one entry.  Returns ``(0, {})`` when no keyword matches."""
    total = 0.0
    matched_keywords = 0
    field_keywords: dict[str, list[str]] = {}

    for keyword in keywords:
        keyword_score = 0.0
        for name, weight in FIELD_WEIGHTS.items():
            text = item.lower[name]
            index = text.find(keyword)
            if index == -1:
                continue
            score = weight
            if is_boundary_match(text, index, len(keyword)):
                score *= BOUNDARY_MULTIPLIER
            if index == 0 and name in LEADING_MATCH_FIELDS:
                score *= LEADING_MULTIPLIER
            keyword_score += score
            field_keywords.setdefault(name, []).append(keyword)
        if keyword_score > 0:
            total += keyword_score
            matched_keywords += 1

    if matched_keywords == 0:
        return 0.0, {}
    if matched_keywords == len(keywords) and len(keywords) > 1:
        total *= ALL_KEYWORDS_MULTIPLIER

    spans = {
        name: merge_spans([span for kw in kws for span in occurrences(item.lower[name], kw)])
        for name, kws in field_keywords.items()
    }
    return total, spans


def _rank(
    candidates: Sequence[SearchableEntry], keywords: Sequence[str], max_results: int
) -> tuple[list[SearchResult], list[SearchableEntry]]:
    max_results = min(max_results, MAX_RESULTS)
    scored: list[tuple[float, SearchableEntry, dict[str, list[Span]]]] = []
    for item in candidates:
        score, spans = score_entry(item, keywords)
        if score > 0:
            scored.append((score, item, spans))
    matched = [item for _, item, _ in scored]
    # sorted() is stable and candidates are in corpus order.
    scored.sort(key=lambda row: row[0], reverse=True)
    results = [SearchResult(item.entry, score, spans) for score, item, spans in scored[:max_results]]
    return results, matched


def _as_index(corpus: Union[SearchIndex, Sequence[Entry]]) -> SearchIndex:
    return corpus if isinstance(corpus, SearchIndex) else SearchIndex(corpus)


def search(
    query: str,
    corpus: Union[SearchIndex, Sequence[Entry]],
    max_results: int = MAX_RESULTS,
) -> list[SearchResult]:
    """Rank *corpus* against *query*.

    An empty query returns every entry with score 0 in corpus order.
    """
    index = _as_index(corpus)
    keywords = normalize_query(query)
    if not keywords:
        return [SearchResult(item.entry, 0.0) for item in index]
    results, _ = _rank(index.items, keywords, max_results)
    return results


class Searcher:
    """Stateful searcher that narrows rescoring as the user keeps typing.

    When the new query only lengthens the last keyword of the previous one,
    every entry it can match was already matched by the previous query, so
    only the previous matched set (kept in corpus order, before truncation)
    is rescored.  Adding a keyword can bring in entries the previous query
    did not match, so that case rescans the whole corpus.
    """

    def __init__(
        self, corpus: Union[SearchIndex, Sequence[Entry]], max_results: int = MAX_RESULTS
    ) -> None:
        self.index = _as_index(corpus)
        self.max_results = max_results
        self._last_keywords: list[str] = []
        self._last_matched: Optional[list[SearchableEntry]] = None

    def reset(self) -> None:
        self._last_keywords = []
        self._last_matched = None

    def _can_narrow(self, keywords: list[str]) -> bool:
        previous = self._last_keywords
        if not previous or self._last_matched is None:
            return False
        if len(self._last_matched) >= len(self.index):
            return False
        if len(keywords) != len(previous) or keywords[:-1] != previous[:-1]:
            return False
        return keywords[-1].startswith(previous[-1])

    def search(self, query: str) -> list[SearchResult]:
        keywords = normalize_query(query)
        if not keywords:
            self.reset()
            return [SearchResult(item.entry, 0.0) for item in self.index]

        if self._can_narrow(keywords):
            candidates = self._last_matched
            logger.debug("Narrowed search over %d previous matches", len(candidates))
        else:
            candidates = self.index.items

        results, matched = _rank(candidates, keywords, self.max_results)
        self._last_keywords = keywords
        self._last_matched = matched
        return results
