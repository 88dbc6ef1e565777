"""zotero_reader.py
Load a Zotero SQLite database into validated :class:`Entry` and
:class:`Collection` records.

Two reads are supported:

* :func:`extract_full`: every regular item (attachments, notes, annotations and
  trashed items are excluded from the entry set; attachments and child notes are
  attached to their parent entry instead).
* :func:`extract_incremental`: only items added or modified from a given
  second onwards.  Collections are always returned in full.

Items whose citation key cannot be resolved are dropped without error.
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple, Optional, Sequence

import pandas as pd
from tqdm import tqdm

from bibnotes.common.entities import Attachment, ChildNote, Collection, Creator, Entry
from bibnotes.common.errors import SourceNotFoundError, SourceReadError
from bibnotes.extraction.citekeys import (
    connect_read_only,
    read_bbt_citekeys,
    resolve_citation_key,
)

logger = logging.getLogger(__name__)

SOURCE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Fields promoted to typed Entry attributes; everything else lands in extra_fields.
PROMOTED_FIELDS = frozenset(
    {"title", "date", "publicationTitle", "abstractNote", "volume", "issue", "pages", "DOI", "url"}
)

_QUOTE_PATTERN = re.compile(r"^'|'$")

_ITEMS_SQL = """
    SELECT i.itemID, it.typeName AS itemType, i.key AS itemKey,
           i.dateAdded, i.dateModified
    FROM items i
    JOIN itemTypes it ON i.itemTypeID = it.itemTypeID
    WHERE it.typeName NOT IN ('attachment', 'note', 'annotation')
      AND i.itemID NOT IN (SELECT itemID FROM deletedItems)
"""

_FIELDS_SQL = """
    SELECT id.itemID, f.fieldName, idv.value
    FROM itemData id
    JOIN fields f ON id.fieldID = f.fieldID
    JOIN itemDataValues idv ON id.valueID = idv.valueID
"""

_CREATORS_SQL = """
    SELECT ic.itemID, c.firstName, c.lastName, c.fieldMode,
           ct.creatorType, ic.orderIndex
    FROM itemCreators ic
    JOIN creators c ON ic.creatorID = c.creatorID
    JOIN creatorTypes ct ON ic.creatorTypeID = ct.creatorTypeID
"""

_TAGS_SQL = """
    SELECT it.itemID, t.name AS tag
    FROM itemTags it
    JOIN tags t ON it.tagID = t.tagID
"""

_ATTACHMENTS_SQL = """
    SELECT ia.itemID, ia.parentItemID, ia.path, ia.contentType,
           i.key AS itemKey, i.dateAdded, i.dateModified,
           (SELECT idv2.value
            FROM itemData id2
            JOIN fields f2 ON id2.fieldID = f2.fieldID AND f2.fieldName = 'title'
            JOIN itemDataValues idv2 ON id2.valueID = idv2.valueID
            WHERE id2.itemID = ia.itemID) AS title
    FROM itemAttachments ia
    JOIN items i ON ia.itemID = i.itemID
    WHERE ia.parentItemID IS NOT NULL
      AND i.itemID NOT IN (SELECT itemID FROM deletedItems)
"""

_NOTES_SQL = """
    SELECT n.parentItemID, n.note, n.title,
           i.key AS itemKey, i.dateAdded, i.dateModified
    FROM itemNotes n
    JOIN items i ON n.itemID = i.itemID
    WHERE n.parentItemID IS NOT NULL
      AND i.itemID NOT IN (SELECT itemID FROM deletedItems)
"""

_CHANGED_ITEMS = "SELECT itemID FROM items WHERE dateModified >= ? OR dateAdded >= ?"


class ExtractionResult(NamedTuple):
    entries: list[Entry]
    collections: dict[str, Collection]


class IncrementalUpdate(NamedTuple):
    entries: list[Entry]
    changed_keys: list[str]
    collections: dict[str, Collection]


def source_modified_at(db_path: Path | str) -> float:
    """Modification time of the database file in epoch seconds, ``0`` if absent."""
    try:
        return os.stat(db_path).st_mtime
    except OSError:
        return 0.0


def format_source_time(timestamp: float) -> str:
    """Render epoch seconds the way Zotero stores ``dateModified`` (UTC)."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(SOURCE_TIME_FORMAT)


def parse_source_time(value: Any) -> Optional[datetime]:
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text[:19], SOURCE_TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.warning("Unparseable Zotero timestamp %r", text)
        return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value)


def _rows(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """DataFrame -> list of plain dicts with SQL NULLs as ``None``."""
    return frame.astype(object).where(frame.notna(), None).to_dict(orient="records")


def _read_frame(
    conn: sqlite3.Connection, sql: str, params: Sequence[Any] = ()
) -> pd.DataFrame:
    return pd.read_sql_query(sql, conn, params=tuple(params))


def _restrict(sql: str, column: str, since: Optional[str]) -> tuple[str, tuple[str, ...]]:
    """Append an *item changed since* filter on *column* when *since* is set."""
    if since is None:
        return sql, ()
    joiner = "AND" if "WHERE" in sql.upper() else "WHERE"
    return f"{sql} {joiner} {column} IN ({_CHANGED_ITEMS})", (since, since)


def _fields_by_item(frame: pd.DataFrame) -> dict[int, dict[str, str]]:
    fields: dict[int, dict[str, str]] = {}
    for item_id, group in frame.groupby("itemID", sort=False):
        fields[int(item_id)] = {
            _text(name): _text(value) for name, value in zip(group["fieldName"], group["value"])
        }
    return fields


def _creators_by_item(frame: pd.DataFrame) -> dict[int, list[Creator]]:
    creators: dict[int, list[Creator]] = {}
    frame = frame.sort_values(["itemID", "orderIndex"], kind="stable")
    for row in _rows(frame):
        role = _text(row["creatorType"])
        if row["fieldMode"] is not None and int(row["fieldMode"]) == 1:
            # Institutional / single-field creator: the name lives in lastName.
            creator = Creator(role=role, display_name=_text(row["lastName"]))
        else:
            first, last = _text(row["firstName"]).strip(), _text(row["lastName"]).strip()
            creator = Creator(
                role=role,
                first_name=first,
                last_name=last,
                display_name=" ".join(part for part in (first, last) if part),
            )
        creators.setdefault(int(row["itemID"]), []).append(creator)
    return creators


def _tags_by_item(frame: pd.DataFrame) -> dict[int, list[str]]:
    tags: dict[int, list[str]] = {}
    for row in _rows(frame):
        bucket = tags.setdefault(int(row["itemID"]), [])
        tag = _text(row["tag"])
        if tag and tag not in bucket:
            bucket.append(tag)
    return tags


def _attachments_by_item(frame: pd.DataFrame, zotero_dir: Path) -> dict[int, list[Attachment]]:
    attachments: dict[int, list[Attachment]] = {}
    for row in _rows(frame):
        file_path = _text(row["path"])
        title = _text(row["title"])
        item_key = _text(row["itemKey"])
        if file_path.startswith("storage:"):
            filename = file_path[len("storage:"):]
            file_path = str(zotero_dir / "storage" / item_key / filename)
            title = title or filename
        else:
            title = title or os.path.basename(file_path)
        attachments.setdefault(int(row["parentItemID"]), []).append(
            Attachment(
                item_key=item_key,
                title=title,
                path=file_path,
                content_type=_text(row["contentType"]),
                added_at=parse_source_time(row["dateAdded"]),
                modified_at=parse_source_time(row["dateModified"]),
            )
        )
    return attachments


def _notes_by_item(frame: pd.DataFrame) -> dict[int, list[ChildNote]]:
    notes: dict[int, list[ChildNote]] = {}
    for row in _rows(frame):
        notes.setdefault(int(row["parentItemID"]), []).append(
            ChildNote(
                item_key=_text(row["itemKey"]),
                note=_text(row["note"]),
                title=_text(row["title"]),
                added_at=parse_source_time(row["dateAdded"]),
                modified_at=parse_source_time(row["dateModified"]),
            )
        )
    return notes


def _venue(item_type: str, fields: dict[str, str]) -> str:
    if fields.get("publicationTitle"):
        return fields["publicationTitle"]
    if fields.get("journalAbbreviation"):
        return fields["journalAbbreviation"]
    if item_type == "conferencePaper" and fields.get("series"):
        return fields["series"]
    if item_type == "statute" and fields.get("code"):
        return fields["code"]
    return ""


def _build_entry(
    item: dict[str, Any],
    citation_key: str,
    fields: dict[str, str],
    creators: list[Creator],
    tags: list[str],
    attachments: list[Attachment],
    notes: list[ChildNote],
) -> Entry:
    item_type = _text(item["itemType"])
    return Entry(
        citation_key=citation_key,
        item_id=int(item["itemID"]),
        item_key=_text(item["itemKey"]),
        item_type=item_type,
        title=_QUOTE_PATTERN.sub("", fields.get("title") or fields.get("nameOfAct") or ""),
        creators=creators,
        venue=_venue(item_type, fields),
        date=fields.get("date") or fields.get("dateEnacted") or "",
        abstract_text=fields.get("abstractNote", ""),
        tags=tags,
        modified_at=parse_source_time(item["dateModified"]),
        added_at=parse_source_time(item["dateAdded"]),
        volume=fields.get("volume", ""),
        issue=fields.get("issue", ""),
        pages=fields.get("pages", ""),
        doi=fields.get("DOI", ""),
        url=fields.get("url", ""),
        attachments=attachments,
        child_notes=notes,
        extra_fields={k: v for k, v in fields.items() if k not in PROMOTED_FIELDS},
    )


def _read_collections(conn: sqlite3.Connection) -> dict[str, Collection]:
    collection_rows = _rows(
        _read_frame(
            conn,
            "SELECT collectionID, collectionName AS name, key, parentCollectionID "
            "FROM collections",
        )
    )
    id_to_key = {int(row["collectionID"]): _text(row["key"]) for row in collection_rows}

    members: dict[int, list[str]] = {}
    for row in _rows(_read_frame(conn, "SELECT collectionID, itemID FROM collectionItems")):
        bucket = members.setdefault(int(row["collectionID"]), [])
        item_id = str(int(row["itemID"]))
        if item_id not in bucket:
            bucket.append(item_id)

    collections: dict[str, Collection] = {}
    for row in collection_rows:
        key = _text(row["key"])
        parent_id = row["parentCollectionID"]
        collections[key] = Collection(
            key=key,
            name=_text(row["name"]),
            parent_key=id_to_key.get(int(parent_id), "") if parent_id is not None else "",
            member_item_ids=members.get(int(row["collectionID"]), []),
        )
    return collections


def _read_entries(
    conn: sqlite3.Connection,
    db_path: Path,
    bbt_keys: dict[int, str],
    since: Optional[str],
    show_progress: bool,
) -> list[Entry]:
    items_sql, items_params = _restrict(_ITEMS_SQL, "i.itemID", since)
    items = _rows(_read_frame(conn, items_sql, items_params).sort_values("itemID", kind="stable"))
    if not items:
        return []

    fields = _fields_by_item(_read_frame(conn, *_restrict(_FIELDS_SQL, "id.itemID", since)))
    creators = _creators_by_item(
        _read_frame(conn, *_restrict(_CREATORS_SQL, "ic.itemID", since))
    )
    tags = _tags_by_item(_read_frame(conn, *_restrict(_TAGS_SQL, "it.itemID", since)))
    attachments = _attachments_by_item(
        _read_frame(conn, *_restrict(_ATTACHMENTS_SQL, "ia.parentItemID", since)).sort_values(
            "itemID", kind="stable"
        ),
        db_path.parent,
    )
    notes = _notes_by_item(_read_frame(conn, *_restrict(_NOTES_SQL, "n.parentItemID", since)))

    entries: list[Entry] = []
    seen: dict[str, int] = {}
    for item in tqdm(items, desc="Building entries", unit="item", disable=not show_progress):
        item_id = int(item["itemID"])
        item_fields = fields.get(item_id, {})
        citation_key = resolve_citation_key(item_id, item_fields, bbt_keys)
        if not citation_key:
            continue
        if citation_key in seen:
            logger.warning(
                "Duplicate citation key %r on items %d and %d; keeping the first",
                citation_key,
                seen[citation_key],
                item_id,
            )
            continue
        seen[citation_key] = item_id
        entries.append(
            _build_entry(
                item,
                citation_key,
                item_fields,
                creators.get(item_id, []),
                tags.get(item_id, []),
                attachments.get(item_id, []),
                notes.get(item_id, []),
            )
        )
    return entries


def _open_source(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        raise SourceNotFoundError(db_path)
    try:
        return connect_read_only(db_path)
    except sqlite3.Error as exc:
        raise SourceReadError(db_path, exc) from exc


def extract_full(db_path: Path | str, *, show_progress: bool = False) -> ExtractionResult:
    """Read every citable item and all collections from *db_path*.

    Args:
        db_path: Filesystem path to ``zotero.sqlite``.
        show_progress: Display a progress bar while entries are assembled.

    Returns:
        :class:`ExtractionResult` with entries in source order.

    Raises:
        SourceNotFoundError: If *db_path* does not exist.
        SourceReadError: If the database cannot be queried.
    """
    db_path = Path(db_path)
    bbt_keys = read_bbt_citekeys(db_path)
    conn = _open_source(db_path)
    try:
        entries = _read_entries(conn, db_path, bbt_keys, None, show_progress)
        collections = _read_collections(conn)
    except (sqlite3.Error, pd.errors.DatabaseError) as exc:
        raise SourceReadError(db_path, exc) from exc
    finally:
        conn.close()

    logger.info("Extracted %d entries and %d collections from %s", len(entries), len(collections), db_path)
    return ExtractionResult(entries, collections)


def extract_incremental(
    db_path: Path | str, since: float, *, show_progress: bool = False
) -> Optional[IncrementalUpdate]:
    """Read only items added or modified since *since*.

    Zotero stores ``dateModified`` / ``dateAdded`` in UTC with one-second
    resolution, so *since* is truncated to its second and the comparison is
    inclusive.  Items changed earlier in that second are returned again; callers
    upserting the result see them as unchanged.

    Args:
        db_path: Filesystem path to ``zotero.sqlite``.
        since: Epoch seconds.
        show_progress: Display a progress bar while entries are assembled.

    Returns:
        :class:`IncrementalUpdate`, or ``None`` when no item changed.

    Raises:
        SourceNotFoundError: If *db_path* does not exist.
        SourceReadError: If the database cannot be queried.
    """
    db_path = Path(db_path)
    bbt_keys = read_bbt_citekeys(db_path)
    conn = _open_source(db_path)
    since_text = format_source_time(since)
    try:
        entries = _read_entries(conn, db_path, bbt_keys, since_text, show_progress)
        if not entries:
            return None
        collections = _read_collections(conn)
    except (sqlite3.Error, pd.errors.DatabaseError) as exc:
        raise SourceReadError(db_path, exc) from exc
    finally:
        conn.close()

    logger.info("Incremental read since %s: %d changed entries", since_text, len(entries))
    return IncrementalUpdate(entries, [e.citation_key for e in entries], collections)
