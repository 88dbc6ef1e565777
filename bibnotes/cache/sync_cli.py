"""sync_cli.py
Command-line entry point for mirroring a Zotero database into the local cache.

This module only handles CLI parsing and delegates the work to
:pyfunc:`bibnotes.cache.sync.sync_cache`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from bibnotes.cache.cache_store import CacheStore
from bibnotes.cache.sync import sync_cache
from bibnotes.common.errors import BibnotesError
from bibnotes.common.settings import settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Synchronise the local cache with a Zotero database.",
    )
    parser.add_argument(
        "--db", type=Path, default=settings.zotero_db_path, help="Path to zotero.sqlite"
    )
    parser.add_argument(
        "--cache-dir", type=Path, default=settings.cache_dir, help="Cache directory"
    )
    parser.add_argument(
        "--full", action="store_true", help="Force a full refresh instead of an incremental one"
    )
    parser.add_argument("--stats", action="store_true", help="Print cache statistics and exit")
    parser.add_argument("--clear", action="store_true", help="Delete the cache and exit")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> None:
    store = CacheStore(args.db, args.cache_dir)

    if args.clear:
        await store.clear()
        print(f"Cleared {store.cache_path}")
        return

    if args.stats:
        await store.load()
        print(json.dumps(store.stats(), indent=2))
        return

    snapshot, mode = await sync_cache(store, force_full=args.full)
    print(f"{mode.value}: {len(snapshot.entries)} entries, {len(snapshot.collections)} collections")


def main() -> None:  # noqa: D401
    """Parse CLI options and run the synchronisation coroutine."""

    args = _parse_args()
    logging.basicConfig(level=settings.log_level.upper())
    if args.db is None:
        raise SystemExit("No Zotero database configured (use --db or ZOTERO_DB_PATH)")

    try:
        asyncio.run(_run(args))
    except BibnotesError as exc:
        raise SystemExit(str(exc))


if __name__ == "__main__":
    main()
