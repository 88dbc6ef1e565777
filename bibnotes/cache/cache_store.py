"""cache_store.py
JSON snapshot cache for one Zotero database.

The caller constructs one :class:`CacheStore` per source path and keeps it for
the session.  Persistence failures are logged and absorbed: the in-memory
snapshot stays authoritative and the next session re-extracts.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from bibnotes.common.entities import CACHE_VERSION, Collection, Entry, Snapshot
from bibnotes.common.settings import settings
from bibnotes.extraction.zotero_reader import source_modified_at as read_source_mtime

logger = logging.getLogger(__name__)


def cache_file_for(source_path: Path | str, cache_dir: Path | str) -> Path:
    """Stable cache location for *source_path* inside *cache_dir*."""
    digest = hashlib.md5(str(Path(source_path).resolve()).encode()).hexdigest()[:12]
    return Path(cache_dir) / f"zotero-cache-{digest}.json"


class CacheStore:
    """Holds, updates and persists the snapshot of a single source database."""

    def __init__(self, source_path: Path | str, cache_dir: Path | str | None = None) -> None:
        self.source_path = Path(source_path)
        self.cache_path = cache_file_for(self.source_path, cache_dir or settings.cache_dir)
        self._snapshot: Optional[Snapshot] = None

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    @property
    def entries(self) -> list[Entry]:
        return self._snapshot.entries if self._snapshot else []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _read_snapshot(self) -> Optional[Snapshot]:
        if not self.cache_path.exists():
            return None
        snapshot = Snapshot.model_validate_json(self.cache_path.read_text(encoding="utf-8"))
        if snapshot.version > CACHE_VERSION:
            logger.info(
                "Ignoring cache %s written by a newer version (%d)", self.cache_path, snapshot.version
            )
            return None
        if snapshot.identity_index is None:
            snapshot.rebuild_index()
        return snapshot

    def _write_snapshot(self, snapshot: Snapshot) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.cache_path.with_name(self.cache_path.name + ".tmp")
        tmp_path.write_text(snapshot.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.cache_path)

    async def load(self) -> Optional[Snapshot]:
        """Load the persisted snapshot; ``None`` on a miss or unreadable file."""
        try:
            snapshot = await asyncio.to_thread(self._read_snapshot)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load cache %s: %s", self.cache_path, exc)
            return None
        if snapshot is not None:
            self._snapshot = snapshot
            logger.info("Loaded %d cached entries from %s", len(snapshot.entries), self.cache_path)
        return snapshot

    async def save(self) -> bool:
        """Persist the current snapshot.  Returns ``False`` if nothing was written."""
        if self._snapshot is None:
            return False
        self._snapshot.rebuild_index()
        try:
            await asyncio.to_thread(self._write_snapshot, self._snapshot)
        except OSError as exc:
            logger.warning("Failed to save cache %s: %s", self.cache_path, exc)
            return False
        return True

    async def clear(self) -> None:
        """Drop the in-memory snapshot and delete the cache file."""
        self._snapshot = None
        try:
            await asyncio.to_thread(self.cache_path.unlink, missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to clear cache file %s: %s", self.cache_path, exc)

    # ------------------------------------------------------------------
    # Freshness and mutation
    # ------------------------------------------------------------------
    def has_source_changed(self) -> bool:
        """True when there is no snapshot or the database was modified since the last sync."""
        modified = read_source_mtime(self.source_path)
        if modified == 0 or self._snapshot is None:
            return True
        return modified > self._snapshot.source_modified_at

    def update(
        self,
        entries: Iterable[Entry],
        collections: Mapping[str, Collection],
        changed_keys: Optional[Iterable[str]] = None,
        source_modified_at: Optional[float] = None,
    ) -> Snapshot:
        """Apply an extraction result to the snapshot.

        Args:
            entries: Extracted entries.
            collections: The full collection map (collections are never diffed).
            changed_keys: Citation keys of an incremental read.  When given and
                non-empty, *entries* are upserted by citation key; otherwise the
                entry list is replaced wholesale.
            source_modified_at: Modification time of the source taken before
                the read started.  Defaults to the current modification time.

        Returns:
            The updated snapshot.
        """
        entries = list(entries)
        changed = list(changed_keys or [])
        now = datetime.now(timezone.utc)

        if self._snapshot is None:
            self._snapshot = Snapshot(entries=entries, collections=dict(collections))
        elif changed:
            self._upsert(entries)
            self._snapshot.collections = dict(collections)
        else:
            self._snapshot.entries = entries
            self._snapshot.collections = dict(collections)

        self._snapshot.rebuild_index()
        if source_modified_at is None:
            source_modified_at = read_source_mtime(self.source_path)
        self._snapshot.source_modified_at = source_modified_at
        self._snapshot.last_modified_at = now
        return self._snapshot

    def _upsert(self, entries: list[Entry]) -> None:
        snapshot = self._snapshot
        index = snapshot.identity_index or snapshot.rebuild_index()
        incoming = {entry.citation_key: entry for entry in entries}
        for key, entry in incoming.items():
            position = index.get(key)
            if position is None:
                snapshot.entries.append(entry)
            elif snapshot.entries[position].item_id != entry.item_id:
                logger.warning(
                    "Citation key %r of item %d is already used by item %d; keeping the cached entry",
                    key,
                    entry.item_id,
                    snapshot.entries[position].item_id,
                )
            else:
                snapshot.entries[position] = entry

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, citation_key: str) -> Optional[Entry]:
        if self._snapshot is None or not self._snapshot.identity_index:
            return None
        position = self._snapshot.identity_index.get(citation_key)
        if position is None or not 0 <= position < len(self._snapshot.entries):
            return None
        return self._snapshot.entries[position]

    def stats(self) -> dict[str, Any]:
        snapshot = self._snapshot
        return {
            "entry_count": len(snapshot.entries) if snapshot else 0,
            "collection_count": len(snapshot.collections) if snapshot else 0,
            "last_modified_at": snapshot.last_modified_at.isoformat() if snapshot else None,
            "source_modified_at": snapshot.source_modified_at if snapshot else 0.0,
            "cache_path": str(self.cache_path),
        }
