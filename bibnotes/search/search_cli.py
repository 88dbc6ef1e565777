"""Interactive search over the cached Zotero library.

The cache is synchronised on start-up, then every query is ranked locally with
:class:`bibnotes.search.ranking.Searcher`.  Matched fragments are printed in
``[brackets]``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Sequence

from bibnotes.cache.cache_store import CacheStore
from bibnotes.cache.sync import sync_cache
from bibnotes.common.errors import BibnotesError
from bibnotes.common.settings import settings as common_settings
from bibnotes.search.ranking import SearchResult, Searcher, Span
from bibnotes.search.search_index import SearchIndex, sort_by_recent
from bibnotes.search.settings import settings

logger = logging.getLogger(__name__)


def highlight(text: str, spans: Sequence[Span]) -> str:
    """Wrap each span of *text* in brackets."""
    parts: list[str] = []
    last = 0
    for start, end in spans:
        parts.append(text[last:start])
        parts.append(f"[{text[start:end]}]")
        last = end
    parts.append(text[last:])
    return "".join(parts)


def _print_hit(rank: int, result: SearchResult) -> None:
    entry = result.entry
    shown = {
        "title": entry.title or "<no title>",
        "author": ", ".join(entry.author_names()),
        "venue": entry.venue,
    }

    def _field(name: str) -> str:
        return highlight(shown[name], result.spans.get(name, [])) if shown[name] else ""

    year = entry.year or "?"
    print(f"{rank}. {_field('title')} ({year})  score={result.score:g}")
    if shown["author"]:
        print(f"   Authors: {_field('author')}")
    if shown["venue"]:
        print(f"   Venue: {_field('venue')}")
    print(f"   Key: {highlight(entry.citation_key, result.spans.get('citation_key', []))}")
    if entry.tags and "tags" in result.spans:
        print(f"   Tags: {highlight(' '.join(entry.tags), result.spans['tags'])}")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive search over the cached library.")
    parser.add_argument(
        "--db", type=Path, default=common_settings.zotero_db_path, help="Path to zotero.sqlite"
    )
    parser.add_argument(
        "--cache-dir", type=Path, default=common_settings.cache_dir, help="Cache directory"
    )
    parser.add_argument(
        "--top-k", type=int, default=10, help="Number of results displayed per query"
    )
    return parser.parse_args()


def _interactive_loop(searcher: Searcher, top_k: int) -> None:
    print(f"\n=== Library search ({len(searcher.index)} entries) ===")
    print("Type 'exit' to quit\n")

    while True:
        try:
            query = input("query> ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if query.lower() in {"exit", "quit"}:
            print("Goodbye!")
            break
        if not query:
            continue

        results = searcher.search(query)
        if not results:
            print("No matches\n")
            continue
        for rank, result in enumerate(results[:top_k], 1):
            _print_hit(rank, result)
        if len(results) > top_k:
            print(f"   ... {len(results) - top_k} more")
        print()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=common_settings.log_level.upper())
    if args.db is None:
        raise SystemExit("No Zotero database configured (use --db or ZOTERO_DB_PATH)")

    store = CacheStore(args.db, args.cache_dir)
    try:
        snapshot, mode = asyncio.run(sync_cache(store))
    except BibnotesError as exc:
        raise SystemExit(str(exc))
    logger.info("Library ready (%s): %d entries", mode.value, len(snapshot.entries))

    searcher = Searcher(SearchIndex(sort_by_recent(snapshot.entries)), settings.search_max_results)
    _interactive_loop(searcher, args.top_k)


if __name__ == "__main__":
    main()
