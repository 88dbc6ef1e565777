"""citekeys.py
Citation-key resolution for Zotero items.

Keys are taken, in order of precedence, from the Better BibTeX database that
sits next to ``zotero.sqlite``, from the item's own ``citationKey`` field, or
from a ``Citation Key: ...`` line in the item's ``extra`` field.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

BBT_DB_NAME = "better-bibtex.sqlite"

_EXTRA_KEY_PATTERN = re.compile(r"^Citation Key:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def connect_read_only(path: Path) -> sqlite3.Connection:
    """Open *path* read-only so a running Zotero does not block the read."""
    return sqlite3.connect(f"{path.resolve().as_uri()}?immutable=1", uri=True)


def _keys_from_kv_table(conn: sqlite3.Connection) -> dict[int, str]:
    # Older Better BibTeX releases keep a JSON blob in a key/value table.
    row = conn.execute(
        """SELECT value FROM "better-bibtex" WHERE name = 'better-bibtex.citekey'"""
    ).fetchone()
    keys: dict[int, str] = {}
    if not row or not row[0]:
        return keys
    parsed = json.loads(row[0])
    for record in parsed.get("data", []) if isinstance(parsed, dict) else []:
        if record.get("itemID") and record.get("citekey"):
            keys[int(record["itemID"])] = str(record["citekey"])
    return keys


def _keys_from_citationkey_table(conn: sqlite3.Connection) -> dict[int, str]:
    rows = conn.execute("SELECT itemID, citationKey FROM citationkey").fetchall()
    return {int(item_id): str(key) for item_id, key in rows if key}


def read_bbt_citekeys(zotero_db_path: Path) -> dict[int, str]:
    """Return the Better BibTeX *itemID -> citation key* mapping.

    Args:
        zotero_db_path: Path to ``zotero.sqlite``; the Better BibTeX database is
            expected in the same directory.

    Returns:
        The mapping, or an empty dict when the database is absent or cannot be
        read with any known schema.  Failures are logged, never raised.
    """
    bbt_path = Path(zotero_db_path).parent / BBT_DB_NAME
    if not bbt_path.exists():
        return {}

    try:
        conn = connect_read_only(bbt_path)
    except sqlite3.Error as exc:
        logger.warning("Could not open Better BibTeX database %s: %s", bbt_path, exc)
        return {}

    try:
        try:
            return _keys_from_kv_table(conn)
        except (sqlite3.Error, ValueError, AttributeError) as exc:
            logger.debug("No usable key/value citation-key table in %s: %s", bbt_path, exc)
        try:
            return _keys_from_citationkey_table(conn)
        except sqlite3.Error as exc:
            logger.warning(
                "Could not extract Better BibTeX citation keys from any known schema: %s",
                exc,
            )
            return {}
    finally:
        conn.close()


def resolve_citation_key(
    item_id: int, fields: Mapping[str, str], bbt_keys: Mapping[int, str]
) -> str:
    """Pick the citation key for one item; ``""`` when none can be found."""
    if bbt_keys.get(item_id):
        return bbt_keys[item_id]
    if fields.get("citationKey"):
        return fields["citationKey"].strip()
    extra = fields.get("extra")
    if extra:
        match = _EXTRA_KEY_PATTERN.search(extra)
        if match:
            return match.group(1).strip()
    return ""
