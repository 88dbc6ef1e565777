"""Zotero database → JSON cache synchronisation.

Workflow
---------
1. Load the persisted snapshot if the store has none in memory.
2. If the database file has not been modified since the last sync, reuse the
   snapshot as-is.
3. Otherwise try an incremental read of the items changed since the recorded
   database modification time and upsert them.
4. Fall back to a full read when there is no usable snapshot, when the
   incremental read found nothing new (e.g. only deletions happened), or when
   a full refresh is forced.
5. Persist the snapshot.

Extraction runs in a worker thread; the snapshot is only replaced once a read
has completed successfully.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from bibnotes.cache.cache_store import CacheStore
from bibnotes.common.entities import Entry, Snapshot
from bibnotes.common.settings import settings
from bibnotes.extraction.zotero_reader import (
    extract_full,
    extract_incremental,
    source_modified_at,
)

logger = logging.getLogger(__name__)


def _has_news(store: CacheStore, entries: list[Entry]) -> bool:
    """True when some entry differs from its cached copy or is not cached yet."""
    return any(store.get(entry.citation_key) != entry for entry in entries)


class SyncMode(str, Enum):
    CACHED = "cached"
    INCREMENTAL = "incremental"
    FULL = "full"


async def sync_cache(store: CacheStore, *, force_full: bool = False) -> tuple[Snapshot, SyncMode]:
    """Bring *store* up to date with its source database.

    Args:
        store: Cache store bound to the source database.
        force_full: Skip the freshness check and the incremental path.

    Returns:
        The current snapshot and how it was obtained.

    Raises:
        SourceNotFoundError: If the database is missing and a read is needed.
        SourceReadError: If the database cannot be read.
    """
    if store.snapshot is None:
        await store.load()

    snapshot = store.snapshot
    if not force_full and snapshot is not None and not store.has_source_changed():
        logger.info("Using cached data: %d entries", len(snapshot.entries))
        return snapshot, SyncMode.CACHED

    # Source mtime before any read; writes made during the read stay unsynced.
    read_started_at = source_modified_at(store.source_path)

    if not force_full and snapshot is not None and snapshot.source_modified_at > 0:
        update = await asyncio.to_thread(
            extract_incremental,
            store.source_path,
            snapshot.source_modified_at,
            show_progress=settings.show_progress,
        )
        if update is not None and _has_news(store, update.entries):
            store.update(
                update.entries,
                update.collections,
                update.changed_keys,
                source_modified_at=read_started_at,
            )
            await store.save()
            logger.info("Incremental update: %d entries updated", len(update.entries))
            return store.snapshot, SyncMode.INCREMENTAL

    result = await asyncio.to_thread(
        extract_full, store.source_path, show_progress=settings.show_progress
    )
    store.update(result.entries, result.collections, source_modified_at=read_started_at)
    await store.save()
    logger.info("Full refresh: %d entries", len(result.entries))
    return store.snapshot, SyncMode.FULL
