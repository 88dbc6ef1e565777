"""entities.py
Shared record types used by extraction, the cache snapshot and search.

All models serialise with camelCase keys so a persisted snapshot reads
``citationKey``, ``sourceModifiedAt``, ``identityIndex`` and so on.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ENTRY_SCHEMA_VERSION = 1
CACHE_VERSION = 1

_YEAR_PATTERN = re.compile(r"\d{4}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Creator(_Record):
    """One creator of an entry, in source order.

    Institutional creators only carry ``display_name``.
    """

    role: str = "author"
    first_name: str = ""
    last_name: str = ""
    display_name: str = ""

    @property
    def is_institution(self) -> bool:
        return not self.first_name and not self.last_name

    @property
    def sort_name(self) -> str:
        return self.last_name or self.display_name or self.first_name


class Attachment(_Record):
    item_key: str
    title: str = ""
    path: str = ""
    content_type: str = ""
    added_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


class ChildNote(_Record):
    item_key: str
    note: str = ""
    title: str = ""
    added_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


class Entry(_Record):
    """A normalised bibliographic record keyed by its citation key."""

    schema_version: int = ENTRY_SCHEMA_VERSION
    citation_key: str
    item_id: int
    item_key: str = ""
    item_type: str = ""
    title: str = ""
    creators: list[Creator] = Field(default_factory=list)
    venue: str = ""
    date: str = ""
    abstract_text: str = ""
    tags: list[str] = Field(default_factory=list)
    modified_at: Optional[datetime] = None
    added_at: Optional[datetime] = None
    volume: str = ""
    issue: str = ""
    pages: str = ""
    doi: str = ""
    url: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    child_notes: list[ChildNote] = Field(default_factory=list)
    extra_fields: dict[str, str] = Field(default_factory=dict)

    @property
    def year(self) -> str:
        match = _YEAR_PATTERN.search(self.date)
        return match.group(0) if match else ""

    @property
    def select_link(self) -> str:
        return f"zotero://select/library/items/{self.item_key}"

    def author_names(self) -> list[str]:
        """Display names of the ``author`` creators, or of every creator."""
        authors = [c.display_name for c in self.creators if c.role == "author"]
        if not authors:
            authors = [c.display_name for c in self.creators]
        return [name for name in authors if name]

    def author_key(self) -> str:
        """Short author label, e.g. ``Smith``, ``Smith and Jones`` or ``Smith et al.``."""
        authors = [c for c in self.creators if c.role == "author"] or self.creators
        names = [c.sort_name for c in authors if c.sort_name]
        if not names:
            return ""
        if len(names) == 1:
            return names[0]
        if len(names) == 2:
            return f"{names[0]} and {names[1]}"
        return f"{names[0]} et al."


class Collection(_Record):
    key: str
    name: str = ""
    parent_key: str = ""
    member_item_ids: list[str] = Field(default_factory=list)


class Snapshot(_Record):
    """Persisted state of the cache for one source database."""

    version: int = CACHE_VERSION
    last_modified_at: datetime = Field(default_factory=_now)
    source_modified_at: float = 0.0
    entries: list[Entry] = Field(default_factory=list)
    collections: dict[str, Collection] = Field(default_factory=dict)
    identity_index: Optional[dict[str, int]] = None

    def rebuild_index(self) -> dict[str, int]:
        self.identity_index = {
            entry.citation_key: position
            for position, entry in enumerate(self.entries)
            if entry.citation_key
        }
        return self.identity_index
