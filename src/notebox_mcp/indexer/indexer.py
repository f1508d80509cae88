"""Search indexer that keeps the workspace files in sync with SQLite FTS5."""

import logging
import os
import sqlite3
import threading
from pathlib import Path

from notebox_mcp.errors import IndexUnavailable
from notebox_mcp.indexer.database import Database
from notebox_mcp.indexer.models import (
    FAILED,
    INDEXED,
    SKIPPED,
    IndexedFile,
    IndexResult,
    IndexSummary,
    SearchResult,
)
from notebox_mcp.indexer.parser import extract_for_index
from notebox_mcp.indexer.walker import compute_hash, iter_indexable_files
from notebox_mcp.paths import META_DIRNAME, SEARCH_DB_FILENAME

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset(
    {
        ".md",
        ".txt",
        ".json",
        ".js",
        ".py",
        ".sql",
        ".html",
        ".css",
        ".yaml",
        ".yml",
        ".sh",
        ".bash",
        ".xml",
        ".csv",
    }
)

MAX_INDEX_BYTES = 1024 * 1024


def build_match_query(query: str) -> str:
    """
    Turn free text into an FTS5 MATCH expression.

    Each whitespace token becomes a quoted prefix term; terms are OR'd so a
    document matching any of them is returned, and bm25 favors documents
    matching more of them.
    """
    terms = query.split()
    return " OR ".join('"' + term.replace('"', '""') + '"*' for term in terms)


class SearchIndexer:
    """
    Full-text index over one workspace, stored in ``<meta>/search.db``.

    The filesystem is always the source of truth. The index is derived and
    can be regenerated at any time with ``rebuild_index``.

    Thread Safety:
        Write operations (rebuild_index, sync, index_file, remove_*) are
        serialized by a lock. Reads use thread-local connections and may run
        concurrently.
    """

    def __init__(self, root: Path, db_path: Path | None = None):
        """
        Initialize the indexer.

        Args:
            root: Workspace root directory
            db_path: Index location, defaults to the metadata subtree
        """
        self.root = Path(os.path.abspath(root))
        self.db_path = db_path or self.root / META_DIRNAME / SEARCH_DB_FILENAME
        self.db = Database(self.db_path)
        self._initialized = False
        self._write_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Open or create the index and upgrade its schema. Idempotent."""
        if self._initialized:
            return
        self.db.initialize()
        if self.db.fts_recreated:
            logger.info("Recreated full-text table in %s; a rebuild will repopulate it", self.db_path)
        self._initialized = True
        logger.debug("Search index %s ready (schema %s)", self.db_path, self.db.get_schema_version())

    def close(self) -> None:
        """Close database connections."""
        self._initialized = False
        self.db.close()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise IndexUnavailable("Search index is not initialized")

    def _relative(self, path: Path) -> str | None:
        """Workspace-relative POSIX path, or None if outside the root."""
        absolute = os.path.abspath(path)
        if not absolute.startswith(str(self.root) + os.sep):
            return None
        return Path(os.path.relpath(absolute, self.root)).as_posix()

    def _to_absolute(self, path: Path | str) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root / path

    # Write operations

    def index_file(self, path: Path | str) -> IndexResult:
        """
        Index a single file (thread-safe).

        Args:
            path: Absolute path, or a path relative to the workspace root

        Returns:
            IndexResult describing whether the file was indexed, skipped
            or failed. Never raises for per-file problems.
        """
        self._ensure_initialized()
        with self._write_lock:
            return self._index_file(self._to_absolute(path))

    def _index_file(self, path: Path) -> IndexResult:
        relative = self._relative(path)
        if relative is None:
            logger.warning("Skipping file outside workspace: %s", path)
            return IndexResult(str(path), SKIPPED, "outside workspace")
        parts = relative.split("/")
        if META_DIRNAME in parts:
            return IndexResult(relative, SKIPPED, "metadata subtree")
        # Same exclusion as the full rebuild and sync walks
        if any(part.startswith(".") for part in parts):
            return IndexResult(relative, SKIPPED, "hidden")

        extension = path.suffix.lower()
        if extension not in TEXT_EXTENSIONS:
            return IndexResult(relative, SKIPPED, "unsupported extension")

        try:
            stat = path.stat()
            if stat.st_size > MAX_INDEX_BYTES:
                return IndexResult(relative, SKIPPED, "too large")
            raw = path.read_bytes()
            content = raw.decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("index_file failed for %s: %s", relative, e)
            return IndexResult(relative, FAILED, str(e))

        frontmatter_text, body = extract_for_index(content, extension)
        record = IndexedFile(
            path=relative,
            filename=path.name,
            extension=extension,
            size=stat.st_size,
            modified_at=stat.st_mtime,
            front_matter=frontmatter_text,
            content_hash=compute_hash(raw),
        )
        try:
            self.db.upsert_file(record, body)
        except sqlite3.Error as e:
            logger.warning("index_file failed for %s: %s", relative, e)
            return IndexResult(relative, FAILED, str(e))
        return IndexResult(relative, INDEXED)

    def remove_file(self, path: Path | str) -> bool:
        """Remove a document and its full-text entry. No-op if never indexed."""
        self._ensure_initialized()
        relative = self._relative(self._to_absolute(path))
        if relative is None:
            return False
        with self._write_lock:
            return self.db.delete_file(relative)

    def remove_tree(self, path: Path | str) -> int:
        """Remove every document at or below ``path``."""
        self._ensure_initialized()
        relative = self._relative(self._to_absolute(path))
        if relative is None:
            return 0
        with self._write_lock:
            return self.db.delete_tree(relative)

    def index_tree(self, path: Path | str) -> IndexSummary:
        """Index every eligible file below a directory (or a single file)."""
        self._ensure_initialized()
        target = self._to_absolute(path)
        summary = IndexSummary()
        with self._write_lock:
            files = [target] if target.is_file() else iter_indexable_files(target)
            for file_path in files:
                summary.add(self._index_file(file_path))
        return summary

    def rebuild_index(self, cancel_event: threading.Event | None = None) -> IndexSummary:
        """
        Clear the index and re-index every eligible file of the workspace.

        Args:
            cancel_event: When set, the walk stops early (workspace switch)

        Returns:
            IndexSummary with indexed/skipped/failed counts.
        """
        self._ensure_initialized()
        summary = IndexSummary()
        with self._write_lock:
            logger.info("Starting full reindex of %s", self.root)
            self.db.clear()

            for file_path in iter_indexable_files(self.root):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Reindex of %s cancelled", self.root)
                    break
                summary.add(self._index_file(file_path))

            logger.info(
                "Reindex complete: %d indexed, %d skipped, %d failed",
                summary.indexed,
                summary.skipped,
                summary.failed,
            )
        return summary

    def sync(self) -> tuple[int, int, int]:
        """
        Sync the index with filesystem changes.

        Uses mtime as fast-path and content hash for edge cases.

        Returns:
            Tuple of (added, updated, deleted) counts.
        """
        self._ensure_initialized()
        with self._write_lock:
            logger.debug("Syncing index with filesystem")

            added = 0
            updated = 0
            deleted = 0
            seen_paths: set[str] = set()

            for file_path in iter_indexable_files(self.root):
                relative = self._relative(file_path)
                if relative is None or file_path.suffix.lower() not in TEXT_EXTENSIONS:
                    continue
                try:
                    stat = file_path.stat()
                except OSError as e:
                    logger.warning("Cannot stat %s: %s", relative, e)
                    continue
                if stat.st_size > MAX_INDEX_BYTES:
                    continue
                seen_paths.add(relative)

                state = self.db.get_file_state(relative)
                if state is None:
                    if self._index_file(file_path).ok:
                        added += 1
                    continue

                existing_mtime, existing_hash = state
                if existing_mtime is not None and abs(stat.st_mtime - existing_mtime) <= 0.001:
                    continue

                try:
                    current_hash = compute_hash(file_path.read_bytes())
                except OSError as e:
                    logger.warning("Cannot read %s: %s", relative, e)
                    continue

                if current_hash != existing_hash:
                    if self._index_file(file_path).ok:
                        updated += 1
                else:
                    # Only mtime changed
                    self.db.touch_file(relative, stat.st_mtime)

            for path in self.db.get_indexed_paths() - seen_paths:
                self.db.delete_file(path)
                deleted += 1

            if added or updated or deleted:
                logger.info(
                    "Sync complete: %d added, %d updated, %d deleted",
                    added,
                    updated,
                    deleted,
                )
            return added, updated, deleted

    # Read operations

    def search(self, query: str, limit: int = 20) -> list[SearchResult]:
        """
        Ranked full-text search.

        Args:
            query: Free text; every whitespace token is a prefix term
            limit: Maximum number of results

        Returns:
            Results ordered by relevance (lower rank is better). An empty
            query yields an empty list. Query errors fall back to a
            filename/path substring match.

        Raises:
            IndexUnavailable: If the index has not been initialized.
        """
        self._ensure_initialized()
        if not query or not query.strip():
            return []

        try:
            return self.db.search(build_match_query(query), limit)
        except sqlite3.Error as e:
            logger.warning("Search query %r failed, using name match: %s", query, e)

        try:
            return self.db.search_by_name(query.strip(), limit)
        except sqlite3.Error as e:
            logger.warning("Name match for %r failed: %s", query, e)
            return []

    def get_document(self, relative_path: str) -> IndexedFile | None:
        self._ensure_initialized()
        return self.db.get_file(relative_path)

    def count(self) -> int:
        """Number of indexed documents."""
        self._ensure_initialized()
        return self.db.count_files()
