"""SQLite database management for the search index."""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from notebox_mcp.indexer.models import IndexedFile, SearchResult

SCHEMA_VERSION = "2"

SCHEMA_SQL = """
-- noteboxMCP search index
-- This index is disposable: it regenerates from the workspace files

PRAGMA journal_mode = WAL;

-- One row per indexed document
CREATE TABLE IF NOT EXISTS files (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    path         TEXT UNIQUE NOT NULL,
    filename     TEXT NOT NULL,
    extension    TEXT,
    size         INTEGER,
    modified_at  REAL,
    indexed_at   TEXT
);

CREATE INDEX IF NOT EXISTS idx_files_path ON files(path);
CREATE INDEX IF NOT EXISTS idx_files_modified ON files(modified_at);

-- Metadata table for index versioning
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);
"""

FTS_SQL = """
CREATE VIRTUAL TABLE IF NOT EXISTS files_fts USING fts5(
    filename,
    content,
    front_matter,
    tokenize='porter unicode61'
);
"""

# Columns added after the first release; older indexes get them via ALTER TABLE
OPTIONAL_COLUMNS = {
    "front_matter": "TEXT",
    "content_hash": "TEXT",
}


class Database:
    """SQLite database holding document records and their FTS5 entries.

    Every ``files`` row owns exactly one ``files_fts`` row with the same
    rowid. FTS5 has no upsert, so content updates delete and re-insert the
    full-text row inside the same transaction as the record upsert.
    """

    # Snippet configuration for FTS5 search results
    SNIPPET_COLUMN_INDEX = 1  # content is the second column in files_fts
    SNIPPET_HIGHLIGHT_START = "<mark>"
    SNIPPET_HIGHLIGHT_END = "</mark>"
    SNIPPET_ELLIPSIS = "..."
    SNIPPET_MAX_TOKENS = 64

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self.fts_recreated = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._local.conn

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for write operations with locking."""
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def initialize(self) -> None:
        """Create the schema, upgrading older indexes in place."""
        with self._write_cursor() as cursor:
            cursor.executescript(SCHEMA_SQL)
            cursor.execute(FTS_SQL)

            cursor.execute("PRAGMA table_info(files)")
            columns = {row["name"] for row in cursor.fetchall()}
            for column, column_type in OPTIONAL_COLUMNS.items():
                if column not in columns:
                    cursor.execute(f"ALTER TABLE files ADD COLUMN {column} {column_type}")

            # An FTS table from an older layout cannot be altered; recreate it.
            # Document rows survive and the next rebuild repopulates it.
            try:
                cursor.execute("SELECT front_matter FROM files_fts LIMIT 1")
            except sqlite3.OperationalError:
                cursor.execute("DROP TABLE IF EXISTS files_fts")
                cursor.execute(FTS_SQL)
                self.fts_recreated = True

            cursor.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
                (SCHEMA_VERSION,),
            )
            cursor.execute(
                "INSERT OR IGNORE INTO meta (key, value) VALUES ('created_at', datetime('now'))"
            )

    def close(self) -> None:
        """Close every connection opened by this database."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error:
                pass
        self._local = threading.local()

    def clear(self) -> None:
        """Clear all data from the database (for reindexing)."""
        with self._write_cursor() as cursor:
            cursor.execute("DELETE FROM files_fts")
            cursor.execute("DELETE FROM files")

    def get_schema_version(self) -> str | None:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT value FROM meta WHERE key = 'schema_version'")
            row = cursor.fetchone()
            return row["value"] if row else None

    # Document operations

    def upsert_file(self, record: IndexedFile, content: str) -> int:
        """Insert or update a document record and replace its full-text entry.

        Returns:
            The record id (also the rowid of its full-text entry).
        """
        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO files
                (path, filename, extension, size, modified_at, indexed_at, front_matter, content_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    filename = excluded.filename,
                    extension = excluded.extension,
                    size = excluded.size,
                    modified_at = excluded.modified_at,
                    indexed_at = excluded.indexed_at,
                    front_matter = excluded.front_matter,
                    content_hash = excluded.content_hash
                """,
                (
                    record.path,
                    record.filename,
                    record.extension,
                    record.size,
                    record.modified_at,
                    datetime.now().isoformat(timespec="seconds"),
                    record.front_matter,
                    record.content_hash,
                ),
            )
            cursor.execute("SELECT id FROM files WHERE path = ?", (record.path,))
            file_id = cursor.fetchone()["id"]

            cursor.execute("DELETE FROM files_fts WHERE rowid = ?", (file_id,))
            cursor.execute(
                """INSERT INTO files_fts (rowid, filename, content, front_matter)
                VALUES (?, ?, ?, ?)""",
                (file_id, record.filename, content, record.front_matter),
            )
            return file_id

    def touch_file(self, path: str, modified_at: float) -> None:
        """Record a new mtime for a document whose content did not change."""
        with self._write_cursor() as cursor:
            cursor.execute(
                "UPDATE files SET modified_at = ? WHERE path = ?",
                (modified_at, path),
            )

    def delete_file(self, path: str) -> bool:
        """Delete a document record and its full-text entry.

        Returns:
            True if a record was removed.
        """
        with self._write_cursor() as cursor:
            cursor.execute("SELECT id FROM files WHERE path = ?", (path,))
            row = cursor.fetchone()
            if row is None:
                return False
            cursor.execute("DELETE FROM files_fts WHERE rowid = ?", (row["id"],))
            cursor.execute("DELETE FROM files WHERE id = ?", (row["id"],))
            return True

    def delete_tree(self, prefix: str) -> int:
        """Delete every document at ``prefix`` or below it."""
        folder_prefix = prefix.rstrip("/") + "/"
        with self._write_cursor() as cursor:
            cursor.execute(
                "SELECT id FROM files WHERE path = ? OR substr(path, 1, ?) = ?",
                (prefix, len(folder_prefix), folder_prefix),
            )
            ids = [(row["id"],) for row in cursor.fetchall()]
            cursor.executemany("DELETE FROM files_fts WHERE rowid = ?", ids)
            cursor.executemany("DELETE FROM files WHERE id = ?", ids)
            return len(ids)

    def get_file(self, path: str) -> IndexedFile | None:
        """Get a document record by its relative path."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM files WHERE path = ?", (path,))
            row = cursor.fetchone()
            if row:
                return self._row_to_file(row)
            return None

    def get_file_state(self, path: str) -> tuple[float | None, str | None] | None:
        """Get (mtime, content_hash) of a document for change detection."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT modified_at, content_hash FROM files WHERE path = ?",
                (path,),
            )
            row = cursor.fetchone()
            return (row["modified_at"], row["content_hash"]) if row else None

    def get_indexed_paths(self) -> set[str]:
        """Get all indexed relative paths."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT path FROM files")
            return {row["path"] for row in cursor.fetchall()}

    def count_files(self) -> int:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS count FROM files")
            return int(cursor.fetchone()["count"])

    def _row_to_file(self, row: sqlite3.Row) -> IndexedFile:
        """Convert a database row to an IndexedFile."""
        indexed_at = row["indexed_at"]
        return IndexedFile(
            id=row["id"],
            path=row["path"],
            filename=row["filename"],
            extension=row["extension"] or "",
            size=row["size"] or 0,
            modified_at=row["modified_at"] or 0.0,
            indexed_at=datetime.fromisoformat(indexed_at) if indexed_at else None,
            front_matter=row["front_matter"] or "",
            content_hash=row["content_hash"],
        )

    # Search operations

    def search(self, match_query: str, limit: int = 20) -> list[SearchResult]:
        """
        Run an FTS5 MATCH query.

        Results are ordered by bm25 ascending (lower is better), ties broken
        by path so the order is deterministic for a given index state.

        Raises:
            sqlite3.Error: On malformed MATCH syntax or engine errors.
        """
        snippet_func = (
            f"snippet(files_fts, {self.SNIPPET_COLUMN_INDEX}, "
            f"'{self.SNIPPET_HIGHLIGHT_START}', '{self.SNIPPET_HIGHLIGHT_END}', "
            f"'{self.SNIPPET_ELLIPSIS}', {self.SNIPPET_MAX_TOKENS})"
        )
        query = f"""
            SELECT
                f.path,
                f.filename,
                {snippet_func} AS snippet,
                bm25(files_fts) AS score
            FROM files_fts
            JOIN files f ON files_fts.rowid = f.id
            WHERE files_fts MATCH ?
            ORDER BY score, f.path
            LIMIT ?
        """
        with self._read_cursor() as cursor:
            cursor.execute(query, (match_query, limit))
            return [
                SearchResult(
                    path=row["path"],
                    filename=row["filename"],
                    snippet=row["snippet"] or "",
                    rank=row["score"],
                )
                for row in cursor.fetchall()
            ]

    def search_by_name(self, text: str, limit: int = 20) -> list[SearchResult]:
        """Case-insensitive substring match over filename and path."""
        needle = text.lower()
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT path, filename FROM files
                WHERE instr(lower(filename), ?) > 0 OR instr(lower(path), ?) > 0
                ORDER BY path
                LIMIT ?""",
                (needle, needle, limit),
            )
            return [
                SearchResult(path=row["path"], filename=row["filename"], snippet="", rank=0.0)
                for row in cursor.fetchall()
            ]
