"""Builders for small Zotero / Better BibTeX databases used by the tests.

Only the tables and columns read by the extraction layer are created.
"""

import json
import os
import sqlite3
from pathlib import Path

_SCHEMA = """
CREATE TABLE itemTypes (itemTypeID INTEGER PRIMARY KEY, typeName TEXT);
CREATE TABLE items (
    itemID INTEGER PRIMARY KEY, itemTypeID INT, dateAdded TEXT,
    dateModified TEXT, libraryID INT, key TEXT
);
CREATE TABLE deletedItems (itemID INTEGER PRIMARY KEY);
CREATE TABLE fields (fieldID INTEGER PRIMARY KEY, fieldName TEXT);
CREATE TABLE itemDataValues (valueID INTEGER PRIMARY KEY, value);
CREATE TABLE itemData (itemID INT, fieldID INT, valueID INT);
CREATE TABLE creatorTypes (creatorTypeID INTEGER PRIMARY KEY, creatorType TEXT);
CREATE TABLE creators (
    creatorID INTEGER PRIMARY KEY, firstName TEXT, lastName TEXT, fieldMode INT
);
CREATE TABLE itemCreators (itemID INT, creatorID INT, creatorTypeID INT, orderIndex INT);
CREATE TABLE tags (tagID INTEGER PRIMARY KEY, name TEXT);
CREATE TABLE itemTags (itemID INT, tagID INT, type INT);
CREATE TABLE itemAttachments (
    itemID INTEGER PRIMARY KEY, parentItemID INT, linkMode INT, contentType TEXT, path TEXT
);
CREATE TABLE itemNotes (itemID INTEGER PRIMARY KEY, parentItemID INT, note TEXT, title TEXT);
CREATE TABLE collections (
    collectionID INTEGER PRIMARY KEY, collectionName TEXT, parentCollectionID INT, key TEXT
);
CREATE TABLE collectionItems (collectionID INT, itemID INT, orderIndex INT);
"""

DEFAULT_DATE = "2020-01-01 00:00:00"


class ZoteroDb:
    """Writable stand-in for ``zotero.sqlite``."""

    def __init__(self, path):
        self.path = Path(path)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.conn.executescript(_SCHEMA)
        self.conn.commit()
        self._next_item = 1

    def close(self):
        self.conn.close()

    def touch(self, seconds=10):
        """Push the file modification time *seconds* into the future."""
        mtime = os.stat(self.path).st_mtime + seconds
        os.utime(self.path, (mtime, mtime))
        return mtime

    def _lookup(self, table, id_column, name_column, name):
        row = self.conn.execute(
            f"SELECT {id_column} FROM {table} WHERE {name_column} = ?", (name,)
        ).fetchone()
        if row:
            return row[0]
        return self.conn.execute(
            f"INSERT INTO {table} ({name_column}) VALUES (?)", (name,)
        ).lastrowid

    def _new_item(self, item_type, date_added, date_modified, key):
        item_id = self._next_item
        self._next_item += 1
        type_id = self._lookup("itemTypes", "itemTypeID", "typeName", item_type)
        self.conn.execute(
            "INSERT INTO items VALUES (?, ?, ?, ?, 1, ?)",
            (item_id, type_id, date_added, date_modified or date_added, key or f"KEY{item_id:05d}"),
        )
        return item_id

    def set_field(self, item_id, name, value):
        field_id = self._lookup("fields", "fieldID", "fieldName", name)
        value_id = self.conn.execute(
            "INSERT INTO itemDataValues (value) VALUES (?)", (value,)
        ).lastrowid
        self.conn.execute("INSERT INTO itemData VALUES (?, ?, ?)", (item_id, field_id, value_id))

    def add_item(
        self,
        fields=None,
        item_type="journalArticle",
        creators=(),
        tags=(),
        date_added=DEFAULT_DATE,
        date_modified=None,
        key=None,
    ):
        """Insert a regular item.

        ``creators`` holds ``(first, last, role)`` tuples; an empty *first*
        name stores a single-field (institutional) creator.
        """
        item_id = self._new_item(item_type, date_added, date_modified, key)
        for name, value in (fields or {}).items():
            self.set_field(item_id, name, value)
        for order, (first, last, role) in enumerate(creators):
            creator_id = self.conn.execute(
                "INSERT INTO creators (firstName, lastName, fieldMode) VALUES (?, ?, ?)",
                (first, last, 0 if first else 1),
            ).lastrowid
            role_id = self._lookup("creatorTypes", "creatorTypeID", "creatorType", role)
            self.conn.execute(
                "INSERT INTO itemCreators VALUES (?, ?, ?, ?)", (item_id, creator_id, role_id, order)
            )
        for tag in tags:
            tag_id = self._lookup("tags", "tagID", "name", tag)
            self.conn.execute("INSERT INTO itemTags VALUES (?, ?, 0)", (item_id, tag_id))
        self.conn.commit()
        return item_id

    def add_attachment(self, parent_id, path, content_type="application/pdf", title=None):
        item_id = self._new_item("attachment", DEFAULT_DATE, None, None)
        if title:
            self.set_field(item_id, "title", title)
        self.conn.execute(
            "INSERT INTO itemAttachments VALUES (?, ?, 0, ?, ?)",
            (item_id, parent_id, content_type, path),
        )
        self.conn.commit()
        return item_id

    def add_note(self, parent_id, note, title=""):
        item_id = self._new_item("note", DEFAULT_DATE, None, None)
        self.conn.execute(
            "INSERT INTO itemNotes VALUES (?, ?, ?, ?)", (item_id, parent_id, note, title)
        )
        self.conn.commit()
        return item_id

    def trash(self, item_id):
        self.conn.execute("INSERT INTO deletedItems VALUES (?)", (item_id,))
        self.conn.commit()

    def modify(self, item_id, date_modified, **fields):
        self.conn.execute(
            "UPDATE items SET dateModified = ? WHERE itemID = ?", (date_modified, item_id)
        )
        for name, value in fields.items():
            self.conn.execute(
                """UPDATE itemDataValues SET value = ? WHERE valueID IN (
                       SELECT id.valueID FROM itemData id JOIN fields f ON id.fieldID = f.fieldID
                       WHERE id.itemID = ? AND f.fieldName = ?)""",
                (value, item_id, name),
            )
        self.conn.commit()

    def add_collection(self, name, key, parent_id=None, items=()):
        collection_id = self.conn.execute(
            "INSERT INTO collections (collectionName, parentCollectionID, key) VALUES (?, ?, ?)",
            (name, parent_id, key),
        ).lastrowid
        for order, item_id in enumerate(items):
            self.conn.execute(
                "INSERT INTO collectionItems VALUES (?, ?, ?)", (collection_id, item_id, order)
            )
        self.conn.commit()
        return collection_id


def write_bbt_kv(zotero_path, keys):
    """Better BibTeX database with the JSON key/value layout."""
    path = Path(zotero_path).parent / "better-bibtex.sqlite"
    conn = sqlite3.connect(path)
    conn.execute('CREATE TABLE "better-bibtex" (name TEXT PRIMARY KEY, value TEXT)')
    data = [{"itemID": item_id, "citekey": key} for item_id, key in keys.items()]
    conn.execute(
        'INSERT INTO "better-bibtex" VALUES (?, ?)',
        ("better-bibtex.citekey", json.dumps({"data": data})),
    )
    conn.commit()
    conn.close()
    return path


def write_bbt_citationkey(zotero_path, keys):
    """Better BibTeX database with the ``citationkey`` table layout."""
    path = Path(zotero_path).parent / "better-bibtex.sqlite"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE citationkey (itemID INTEGER PRIMARY KEY, citationKey TEXT)")
    conn.executemany("INSERT INTO citationkey VALUES (?, ?)", list(keys.items()))
    conn.commit()
    conn.close()
    return path
