"""Pre-computed search fields for every cached entry.

Lower-casing is done once per snapshot so that scoring a keystroke is a series
of plain substring lookups.  Each field keeps its original-case text as well;
the lower-cased copy always has the same length, so highlight offsets computed
on it apply to the original text unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from bibnotes.common.entities import Entry

# Field name -> base weight.  Order is also the scoring order.
FIELD_WEIGHTS: dict[str, float] = {
    "title": 100,
    "author": 80,
    "venue": 60,
    "citation_key": 50,
    "date": 45,
    "tags": 40,
    "abstract": 30,
}

# Fields that earn the extra multiplier when the match starts the field.
LEADING_MATCH_FIELDS = frozenset({"title", "author"})


def fold_case(text: str) -> str:
    """Lower-case *text* without changing its length."""
    lowered = text.lower()
    if len(lowered) == len(text):
        return lowered
    return "".join(ch if len(ch.lower()) != 1 else ch.lower() for ch in text)


def _field_texts(entry: Entry) -> dict[str, str]:
    return {
        "title": entry.title,
        "author": ", ".join(entry.author_names()),
        "venue": entry.venue,
        "citation_key": entry.citation_key,
        "date": entry.date,
        "tags": " ".join(entry.tags),
        "abstract": entry.abstract_text,
    }


@dataclass(frozen=True)
class SearchableEntry:
    entry: Entry
    position: int
    original: dict[str, str]
    lower: dict[str, str]

    @classmethod
    def from_entry(cls, entry: Entry, position: int) -> "SearchableEntry":
        original = _field_texts(entry)
        return cls(
            entry=entry,
            position=position,
            original=original,
            lower={name: fold_case(text) for name, text in original.items()},
        )


class SearchIndex:
    """Ordered collection of :class:`SearchableEntry` built from a corpus."""

    def __init__(self, entries: Iterable[Entry]) -> None:
        self.items: list[SearchableEntry] = [
            SearchableEntry.from_entry(entry, position) for position, entry in enumerate(entries)
        ]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[SearchableEntry]:
        return iter(self.items)


def sort_by_recent(entries: Iterable[Entry]) -> list[Entry]:
    """Most recently modified first; entries without a timestamp go last."""
    entries = list(entries)
    dated = [e for e in entries if e.modified_at is not None]
    undated = [e for e in entries if e.modified_at is None]
    return sorted(dated, key=lambda e: e.modified_at, reverse=True) + undated
