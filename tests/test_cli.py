"""
Tests for the command-line entry points.
"""

import shutil
import sys
import tempfile
from pathlib import Path

import pytest

from bibnotes.cache import sync_cli
from bibnotes.notes import merge_cli
from bibnotes.search.search_cli import highlight
from zotero_db import ZoteroDb


class TestSyncCli:
    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.db_path = self.temp_dir / "zotero.sqlite"
        self.cache_dir = self.temp_dir / "cache"
        self.db = ZoteroDb(self.db_path)
        self.db.add_item({"title": "Paper", "citationKey": "paper"})

    def teardown_method(self):
        self.db.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _run(self, monkeypatch, *extra):
        argv = ["bibnotes-sync", "--db", str(self.db_path), "--cache-dir", str(self.cache_dir)]
        monkeypatch.setattr(sys, "argv", argv + list(extra))
        sync_cli.main()

    def test_sync_then_stats_then_clear(self, monkeypatch, capsys):
        self._run(monkeypatch)
        assert capsys.readouterr().out.startswith("full: 1 entries, 0 collections")

        self._run(monkeypatch, "--stats")
        assert '"entry_count": 1' in capsys.readouterr().out

        self._run(monkeypatch, "--clear")
        assert "Cleared" in capsys.readouterr().out
        assert not list(self.cache_dir.glob("*.json"))

    def test_missing_database_exits(self, monkeypatch):
        argv = ["bibnotes-sync", "--db", str(self.temp_dir / "absent.sqlite")]
        monkeypatch.setattr(sys, "argv", argv + ["--cache-dir", str(self.cache_dir)])

        with pytest.raises(SystemExit, match="not found"):
            sync_cli.main()


class TestMergeCli:
    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.note = self.temp_dir / "smith2020.md"
        self.generated = self.temp_dir / "generated.md"

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_preserve_all(self, monkeypatch):
        self.note.write_text("# Smith\n\nKept line\n\nMy remark\n", encoding="utf-8")
        self.generated.write_text("# Smith\n\nKept line\n\nAdded line\n", encoding="utf-8")
        monkeypatch.setattr(
            sys,
            "argv",
            ["bibnotes-merge", str(self.note), str(self.generated), "--policy", "preserve-all"],
        )

        merge_cli.main()

        merged = self.note.read_text(encoding="utf-8")
        assert "My remark" in merged
        assert "Added line" in merged

    def test_missing_generated_file_exits(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["bibnotes-merge", str(self.note), str(self.generated)])

        with pytest.raises(SystemExit):
            merge_cli.main()


class TestHighlight:
    def test_brackets(self):
        assert highlight("Graph of graphs", [(0, 5), (9, 14)]) == "[Graph] of [graph]s"
        assert highlight("plain", []) == "plain"
