"""merge.py
Reconcile a freshly generated note with the copy the user has edited.

The line reconciliation is a sampling heuristic, not a diff: each generated line
(stripped of decoration) is looked up in the existing note, whole for short
lines, by halves from 30 characters, by quarters from 150.  Lines that are not
found are inserted after the line break that follows the furthest match seen so
far.  Existing notes rely on these exact thresholds and splits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

HALF_SAMPLE_MIN_LENGTH = 30
QUARTER_SAMPLE_MIN_LENGTH = 150

_LEADING_DECORATION = (
    re.compile(r"^- "),
    re.compile(r"^> "),
    re.compile(r"^="),
    re.compile(r"^\**"),
    re.compile(r'^"'),
)

_TRAILING_DECORATION = (
    re.compile(r"=$"),
    re.compile(r"\**$"),
    re.compile(r'"$'),
)


class MergePolicy(str, Enum):
    OVERWRITE_ALL = "Overwrite Entire Note"
    PRESERVE_ALL = "Save Entire Note"
    PRESERVE_SECTION = "Select Section"


@dataclass(frozen=True)
class MergeOptions:
    """How to merge a regenerated note into the existing one.

    ``start_marker``/``end_marker`` bound the preserved region for
    :attr:`MergePolicy.PRESERVE_SECTION`; an empty or missing marker means the
    start/end of the text.  ``author_disambiguator`` is the author label used
    in machine-appended citations such as ``(Smith, 2020, p. 4)``.
    """

    policy: MergePolicy = MergePolicy.PRESERVE_ALL
    start_marker: str = ""
    end_marker: str = ""
    author_disambiguator: str = ""
    double_spaced: bool = True


def _citation_patterns(author_disambiguator: str) -> tuple[re.Pattern[str], re.Pattern[str]]:
    author = re.escape(author_disambiguator)
    return (
        re.compile(r"\(" + author + r", \d+, p\. \d+\)$"),
        re.compile(r"\(" + author + r" \d+:\d+\)$"),
    )


def strip_decoration(line: str, author_disambiguator: str = "") -> str:
    """Remove list/quote/emphasis markers and a trailing citation from *line*."""
    stripped = line.strip()
    for pattern in _LEADING_DECORATION:
        stripped = pattern.sub("", stripped, count=1)
    for pattern in _citation_patterns(author_disambiguator):
        stripped = pattern.sub("", stripped, count=1)
    for pattern in _TRAILING_DECORATION:
        stripped = pattern.sub("", stripped)
    return stripped


def sample_segments(line: str) -> list[str]:
    """Substrings of *line* looked up in the existing note.

    A single-character line yields no sample and is therefore never found.
    """
    length = len(line)
    if 1 < length < HALF_SAMPLE_MIN_LENGTH:
        return [line]
    if HALF_SAMPLE_MIN_LENGTH <= length < QUARTER_SAMPLE_MIN_LENGTH:
        half = length // 2
        return [line[:half], line[half + 1:]]
    if length >= QUARTER_SAMPLE_MIN_LENGTH:
        quarter, half, three_quarters = length // 4, length // 2, (3 * length) // 4
        return [
            line[:quarter],
            line[quarter + 1:half],
            line[half + 1:three_quarters],
            line[three_quarters + 1:],
        ]
    return []


def find_anchor(existing: str, line: str) -> int:
    """Highest offset at which any sample of *line* first occurs, or ``-1``."""
    return max([-1] + [existing.find(segment) for segment in sample_segments(line)])


def reconcile_lines(
    existing: str,
    generated: str,
    author_disambiguator: str = "",
    double_spaced: bool = True,
) -> str:
    """Insert generated lines missing from *existing* next to their context."""
    line_breaks = [match.start() for match in re.finditer("\n", existing)]

    anchor = 0
    insertions: list[tuple[int, str]] = []
    for raw_line in generated.split("\n"):
        stripped = strip_decoration(raw_line, author_disambiguator)
        if not stripped:
            continue
        position = find_anchor(existing, stripped)
        if position > -1:
            anchor = max(anchor, position)
            continue
        insert_at = next((b for b in line_breaks if b > anchor), 0)
        insertions.append((insert_at, raw_line))

    separator = "\n\n" if double_spaced else "\n"
    for insert_at, raw_line in reversed(insertions):
        existing = existing[:insert_at] + separator + raw_line + existing[insert_at:]
    return existing


def _marker_bounds(text: str, start_marker: str, end_marker: str) -> tuple[int, int]:
    start = text.find(start_marker) if start_marker else 0
    if start < 0:
        start = 0
    end = len(text)
    if end_marker:
        found = text.find(end_marker)
        if found >= 0:
            end = found + len(end_marker)
    return start, end


def splice_section(existing: str, generated: str, start_marker: str, end_marker: str) -> str:
    """Generated text around the marker-delimited region taken from *existing*."""
    old_start, old_end = _marker_bounds(existing, start_marker, end_marker)
    new_start, new_end = _marker_bounds(generated, start_marker, end_marker)
    return generated[:new_start] + existing[old_start:old_end] + generated[new_end:]


def merge(existing: str, generated: str, options: MergeOptions = MergeOptions()) -> str:
    """Combine *existing* and *generated* according to ``options.policy``."""
    if options.policy is MergePolicy.OVERWRITE_ALL:
        return generated

    reconciled = reconcile_lines(
        existing, generated, options.author_disambiguator, options.double_spaced
    )
    if options.policy is MergePolicy.PRESERVE_SECTION:
        return splice_section(reconciled, generated, options.start_marker, options.end_marker)
    return reconciled
