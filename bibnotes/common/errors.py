"""Exceptions raised by the extraction layer and surfaced to callers."""

from __future__ import annotations

from pathlib import Path


class BibnotesError(RuntimeError):
    """Base class for errors the command-line tools report to the user."""


class SourceNotFoundError(BibnotesError):
    """Raised when the Zotero database does not exist."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(f"Zotero database not found at: {path}")
        self.path = Path(path)


class SourceReadError(BibnotesError):
    """Raised when the Zotero database exists but cannot be queried."""

    def __init__(self, path: Path | str, reason: object) -> None:
        super().__init__(f"Cannot read Zotero database at {path}: {reason}")
        self.path = Path(path)
