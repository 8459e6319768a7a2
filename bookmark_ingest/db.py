"""
Bookmark Ingest - Record Store

SQLite-backed persistence for records. Identity resolution (matching by
URL) happens in the reconciliation engine; the store only inserts rows
without an id and updates rows by id.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from .errors import StoreError
from .models import Record

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        title_romanized TEXT,
        url TEXT NOT NULL,
        url_key TEXT NOT NULL UNIQUE,
        url_with_chapter TEXT,
        chapter TEXT,
        last_update TEXT,
        last_update_millis INTEGER,
        notes TEXT,
        my_anime_list TEXT
    );

    CREATE TABLE IF NOT EXISTS tags (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tag TEXT NOT NULL UNIQUE
    );

    CREATE TABLE IF NOT EXISTS record_to_tags_map (
        record_id INTEGER NOT NULL,
        tag_id INTEGER NOT NULL,
        position INTEGER NOT NULL,
        FOREIGN KEY(record_id) REFERENCES records(id),
        FOREIGN KEY(tag_id) REFERENCES tags(id),
        UNIQUE(record_id, tag_id)
    );
"""

# Record field -> records column
COLUMNS = {
    "title": "title",
    "possible_title_romanized": "title_romanized",
    "url": "url",
    "possible_url_with_chapter": "url_with_chapter",
    "possible_chapter": "chapter",
    "possible_last_update": "last_update",
    "possible_last_update_millis": "last_update_millis",
    "possible_notes": "notes",
    "possible_my_anime_list": "my_anime_list",
}


class RecordStore:
    """
    Local record store.

    Use ``RecordStore.open_or_create(path)`` and close it (or use it as a
    context manager) when the run ends.
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize the store without connecting.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.created = False
        self._conn: Optional[sqlite3.Connection] = None

    @classmethod
    def open_or_create(cls, db_path: str | Path) -> "RecordStore":
        """
        Open the store, creating its schema when the records table is absent.

        An existing but empty file counts as absent.

        Raises:
            StoreError: If the database cannot be opened or initialized
        """
        store = cls(db_path)
        store.open()
        return store

    def open(self) -> None:
        if not self.db_path.parent.exists():
            raise StoreError(f"Directory for store does not exist: {self.db_path.parent}")

        try:
            self._conn = sqlite3.connect(self.db_path, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self.created = not self._has_table("records")
            if self.created:
                logger.info(f"Creating record store schema in {self.db_path}")
                self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            self.close()
            raise StoreError(f"Cannot open record store {self.db_path}: {e}") from e

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "RecordStore":
        if self._conn is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Record store is not open")
        return self._conn

    def _has_table(self, name: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (name,),
        ).fetchone()
        return row is not None

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """
        Run the enclosed reads and writes as one transaction, rolling back on
        any error.

        A nested call joins the open transaction; the outermost call commits.
        """
        if self.conn.in_transaction:
            yield self
            return

        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot start transaction on {self.db_path}: {e}") from e

        try:
            yield self
            self.conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback()
            raise StoreError(f"Record store write failed, rolled back: {e}") from e
        except BaseException:
            self._rollback()
            raise

    def _rollback(self) -> None:
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK")

    def read_all(self) -> list[Record]:
        """
        Read every stored record with its id and tags.

        Returns:
            Records ordered by id
        """
        try:
            rows = self.conn.execute("SELECT * FROM records ORDER BY id").fetchall()
            tag_rows = self.conn.execute(
                """
                SELECT mt.record_id, t.tag
                FROM record_to_tags_map AS mt
                JOIN tags AS t ON mt.tag_id = t.id
                ORDER BY mt.record_id, mt.position
                """
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot read records from {self.db_path}: {e}") from e

        tags_by_record: dict[int, list[str]] = {}
        for tag_row in tag_rows:
            tags_by_record.setdefault(tag_row["record_id"], []).append(tag_row["tag"])

        records = []
        for row in rows:
            try:
                records.append(Record(
                    id=row["id"],
                    tags=tags_by_record.get(row["id"], []),
                    **{field: row[column] for field, column in COLUMNS.items()},
                ))
            except ValidationError as e:
                raise StoreError(f"Stored record {row['id']} is invalid: {e}") from e
        return records

    def count(self) -> int:
        """Number of stored records"""
        row = self.conn.execute("SELECT COUNT(*) AS count FROM records").fetchone()
        return row["count"] if row else 0

    def upsert(self, record: Record) -> int:
        """
        Insert a record without id, or update the row with the record's id.

        Returns:
            The record's store id

        Raises:
            StoreError: If an update targets a missing id
            sqlite3.Error: On constraint violations (rolled back by transaction())
        """
        values = {column: getattr(record, field) for field, column in COLUMNS.items()}
        values["url_key"] = record.url_key

        if record.id == 0:
            columns = ", ".join(values)
            placeholders = ", ".join(f":{column}" for column in values)
            cursor = self.conn.execute(
                f"INSERT INTO records ({columns}) VALUES ({placeholders})",
                values,
            )
            record_id = cursor.lastrowid
        else:
            assignments = ", ".join(f"{column} = :{column}" for column in values)
            values["id"] = record.id
            cursor = self.conn.execute(
                f"UPDATE records SET {assignments} WHERE id = :id",
                values,
            )
            if cursor.rowcount == 0:
                raise StoreError(f"Cannot update record {record.id}: id not found")
            record_id = record.id

        self._replace_tags(record_id, record.tags)
        return record_id

    def _replace_tags(self, record_id: int, tags: list[str]) -> None:
        self.conn.execute("DELETE FROM record_to_tags_map WHERE record_id = ?", (record_id,))
        for position, tag in enumerate(tags):
            self.conn.execute("INSERT OR IGNORE INTO tags (tag) VALUES (?)", (tag,))
            tag_id = self.conn.execute("SELECT id FROM tags WHERE tag = ?", (tag,)).fetchone()["id"]
            self.conn.execute(
                """
                INSERT OR IGNORE INTO record_to_tags_map (record_id, tag_id, position)
                VALUES (?, ?, ?)
                """,
                (record_id, tag_id, position),
            )
