"""
Tests for keeping the cache in step with the Zotero database.
"""

import asyncio
import shutil
import tempfile
from pathlib import Path

import pytest

from bibnotes.cache import sync as sync_module
from bibnotes.cache.cache_store import CacheStore
from bibnotes.cache.sync import SyncMode, sync_cache
from bibnotes.common.errors import SourceNotFoundError
from zotero_db import ZoteroDb


class TestSyncCache:
    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.db_path = self.temp_dir / "zotero.sqlite"
        self.cache_dir = self.temp_dir / "cache"
        self.db = ZoteroDb(self.db_path)
        self.first = self.db.add_item({"title": "First", "citationKey": "first"})
        self.second = self.db.add_item({"title": "Second", "citationKey": "second"})

    def teardown_method(self):
        self.db.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _sync(self, store=None, **kwargs):
        store = store or CacheStore(self.db_path, self.cache_dir)
        snapshot, mode = asyncio.run(sync_cache(store, **kwargs))
        return store, snapshot, mode

    def test_first_run_is_full_then_cached(self):
        store, snapshot, mode = self._sync()
        assert mode is SyncMode.FULL
        assert [e.citation_key for e in snapshot.entries] == ["first", "second"]
        assert store.cache_path.exists()

        _, snapshot, mode = self._sync()
        assert mode is SyncMode.CACHED
        assert [e.citation_key for e in snapshot.entries] == ["first", "second"]

    def test_incremental_update(self):
        store, _, _ = self._sync()
        untouched = store.get("first")

        self.db.add_item({"title": "Third", "citationKey": "third"}, date_added="2099-01-01 00:00:00")
        self.db.modify(self.second, "2099-01-01 00:00:00", title="Second, revised")
        self.db.touch()

        _, snapshot, mode = self._sync(store)

        assert mode is SyncMode.INCREMENTAL
        assert [e.citation_key for e in snapshot.entries] == ["first", "second", "third"]
        assert store.get("second").title == "Second, revised"
        assert store.get("first") is untouched

    def test_incremental_persists(self):
        store, _, _ = self._sync()
        self.db.add_item({"title": "Third", "citationKey": "third"}, date_added="2099-01-01 00:00:00")
        self.db.touch()
        self._sync(store)

        _, snapshot, mode = self._sync()

        assert mode is SyncMode.CACHED
        assert len(snapshot.entries) == 3

    def test_write_during_read_is_picked_up_next_sync(self, monkeypatch):
        read_library = sync_module.extract_full

        def read_then_write(*args, **kwargs):
            result = read_library(*args, **kwargs)
            self.db.add_item(
                {"title": "Late", "citationKey": "late"}, date_added="2099-01-01 00:00:00"
            )
            self.db.touch()
            return result

        monkeypatch.setattr(sync_module, "extract_full", read_then_write)
        store, snapshot, mode = self._sync()
        assert mode is SyncMode.FULL
        assert [e.citation_key for e in snapshot.entries] == ["first", "second"]

        _, snapshot, mode = self._sync(store)

        assert mode is SyncMode.INCREMENTAL
        assert [e.citation_key for e in snapshot.entries] == ["first", "second", "late"]

    def test_falls_back_to_full_when_nothing_changed(self):
        store, _, _ = self._sync()
        self.db.trash(self.first)
        self.db.touch()

        _, snapshot, mode = self._sync(store)

        assert mode is SyncMode.FULL
        assert [e.citation_key for e in snapshot.entries] == ["second"]

    def test_force_full(self):
        store, _, _ = self._sync()

        _, _, mode = self._sync(store, force_full=True)

        assert mode is SyncMode.FULL

    def test_missing_database(self):
        store = CacheStore(self.temp_dir / "absent.sqlite", self.cache_dir)

        with pytest.raises(SourceNotFoundError):
            asyncio.run(sync_cache(store))
        assert store.snapshot is None
