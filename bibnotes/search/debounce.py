"""Debounced, non-blocking search for interactive callers.

Each keystroke returns the best results known so far and (re)schedules the
scoring pass on the running event loop after a short quiet interval.  A
superseded pass is dropped by cancelling its timer handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from bibnotes.search.ranking import SearchResult, Searcher
from bibnotes.search.settings import settings

logger = logging.getLogger(__name__)

ResultsCallback = Callable[[str, list[SearchResult]], None]


class DebouncedSearch:
    def __init__(
        self,
        searcher: Searcher,
        delay: Optional[float] = None,
        on_results: Optional[ResultsCallback] = None,
    ) -> None:
        self.searcher = searcher
        self.delay = settings.search_debounce_ms / 1000 if delay is None else delay
        self.on_results = on_results
        self.results: list[SearchResult] = []
        self.last_query = ""
        self._pending: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def submit(self, query: str) -> list[SearchResult]:
        """Register a keystroke and return the current results immediately.

        Must be called from a coroutine or callback running on the event loop.
        """
        if not query.strip():
            self.cancel()
            self.last_query = ""
            self.results = self.searcher.search("")
            return self.results

        if query == self.last_query:
            self.cancel()
            return self.results

        self.cancel()
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self.delay, self._run, query)
        return self.results

    def _run(self, query: str) -> None:
        self._pending = None
        self.results = self.searcher.search(query)
        self.last_query = query
        logger.debug("Query %r scored: %d results", query, len(self.results))
        if self.on_results is not None:
            self.on_results(query, self.results)

    async def flush(self) -> list[SearchResult]:
        """Wait until no scoring pass is pending and return the final results."""
        while self._pending is not None:
            await asyncio.sleep(self.delay)
        return self.results
