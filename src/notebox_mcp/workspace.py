"""Workspace session lifecycle and the file store built on top of it.

A ``WorkspaceStore`` owns at most one ``WorkspaceSession`` at a time. Every
file operation goes through the current session's path resolver, writes
snapshot through the version store, and refreshes the search index and the
tree index before returning.
"""

from __future__ import annotations

import base64
import logging
import os
import shutil
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from notebox_mcp.config import Config
from notebox_mcp.errors import (
    AlreadyExists,
    IndexUnavailable,
    InvalidMove,
    InvalidPath,
    NotFound,
    WorkspaceClosed,
    WorkspaceIOError,
)
from notebox_mcp.indexer import TEXT_EXTENSIONS, SearchIndexer, TreeIndexer
from notebox_mcp.indexer.models import IndexSummary, SearchResult, TreeIndex
from notebox_mcp.indexer.parser import (
    NOTE_EXTENSION,
    apply_frontmatter_policy,
    build_frontmatter,
    synthesize_frontmatter,
)
from notebox_mcp.paths import PathResolver, is_self_containing_move, normalize_relative
from notebox_mcp.preferences import (
    LAST_WORKSPACE_KEY,
    load_frontmatter_defaults,
    load_settings,
    save_settings,
)
from notebox_mcp.sync import SyncManager
from notebox_mcp.versions import VersionStore
from notebox_mcp.watcher import ChangeWatcher

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

INDEX_JOIN_TIMEOUT = 5.0


def mime_type_for(name: str) -> str:
    return IMAGE_MIME_TYPES.get(Path(name).suffix.lower(), DEFAULT_MIME_TYPE)


def unique_path(target: Path) -> Path:
    """First free variant of ``target``: ``name.ext``, ``name (1).ext``, ..."""
    candidate = target
    counter = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = target.with_name(f"{target.stem} ({counter}){target.suffix}")
        counter += 1
    return candidate


class SessionState(Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"


@dataclass
class BinaryContent:
    """Base64 payload of a binary file plus its MIME type."""

    data: str
    mime: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime};base64,{self.data}"


@dataclass
class ActiveFile:
    """What the collaborator currently has open, as seen on disk."""

    filename: str | None = None
    path: str | None = None
    content: str | None = None
    exists: bool = False
    size: int | None = None
    modified: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "path": self.path,
            "content": self.content,
            "exists": self.exists,
            "metadata": (
                {"size": self.size, "modified": self.modified} if self.exists else None
            ),
            "error": self.error,
        }


class WorkspaceSession:
    """
    Everything that belongs to one opened workspace root.

    A session is created per ``open`` and discarded on close or switch; it
    is never reopened. Callbacks it emits carry its generation so the store
    can drop those arriving after a switch.
    """

    def __init__(
        self,
        root: Path,
        generation: int,
        debounce: float,
        sync_interval: int,
        on_tree_update: Callable[[int, TreeIndex], None],
        on_index_rebuilt: Callable[[int, IndexSummary], None],
    ):
        self.root = Path(os.path.abspath(root))
        self.generation = generation
        self.state = SessionState.CLOSED
        self.resolver = PathResolver(self.root)
        self.versions = VersionStore(self.resolver.meta_dir)
        self.tree = TreeIndexer(self.root, on_update=lambda index: on_tree_update(generation, index))
        self.search = SearchIndexer(self.root)
        self.watcher = ChangeWatcher(debounce)
        self.sync = SyncManager(self.search, sync_interval) if sync_interval > 0 else None
        self.lock = threading.RLock()
        self.active_file: str | None = None
        self._on_index_rebuilt = on_index_rebuilt
        self._cancel = threading.Event()
        self._index_done = threading.Event()
        self._index_thread: threading.Thread | None = None

    def open(self) -> None:
        """Create the directories, build the tree, start background services."""
        self.state = SessionState.OPENING
        self.root.mkdir(parents=True, exist_ok=True)
        self.resolver.meta_dir.mkdir(parents=True, exist_ok=True)

        try:
            self.search.initialize()
        except (sqlite3.Error, OSError):
            logger.exception("Search index unavailable for %s", self.root)

        self.tree.build_index()

        if not self.watcher.start(self.root, self._on_external_change):
            logger.warning("Watching disabled for %s; tree refreshes only on writes", self.root)

        if self.search.ready:
            self._index_thread = threading.Thread(
                target=self._rebuild_search,
                name="notebox-index",
                daemon=True,
            )
            self._index_thread.start()
        else:
            self._index_done.set()

        if self.sync is not None:
            self.sync.start()
        self.state = SessionState.OPEN
        logger.info("Workspace %s open (generation %d)", self.root, self.generation)

    def _rebuild_search(self) -> None:
        try:
            summary = self.search.rebuild_index(self._cancel)
            if not self._cancel.is_set():
                self._on_index_rebuilt(self.generation, summary)
        except Exception:
            logger.exception("Background index rebuild failed for %s", self.root)
        finally:
            self._index_done.set()

    def _on_external_change(self) -> None:
        if self.state is not SessionState.OPEN:
            return
        logger.debug("External change detected in %s", self.root)
        self.refresh_tree()

    def refresh_tree(self) -> TreeIndex | None:
        """Rebuild the tree index; failures are logged."""
        try:
            return self.tree.build_index()
        except OSError as e:
            logger.error("Tree rebuild failed for %s: %s", self.root, e)
            return None

    def wait_for_index(self, timeout: float | None = None) -> bool:
        return self._index_done.wait(timeout)

    def close(self) -> None:
        """Stop watcher, sync and background indexing; release the index."""
        if self.state is SessionState.CLOSED and self._index_thread is None:
            return
        self.state = SessionState.CLOSED
        self._cancel.set()
        self.watcher.stop()
        if self.sync is not None:
            self.sync.stop()

        if self._index_thread is not None:
            self._index_thread.join(timeout=INDEX_JOIN_TIMEOUT)
            if self._index_thread.is_alive():
                logger.warning("Background indexing of %s did not stop in time", self.root)
            self._index_thread = None

        self.search.close()
        self.tree.clear()
        self.active_file = None
        logger.info("Workspace %s closed", self.root)


class WorkspaceStore:
    """
    File operations over the currently open workspace.

    Mutating operations are serialized per workspace and always rebuild the
    tree index once they have touched the filesystem, even when they fail
    part way.
    """

    def __init__(self, config: Config):
        self.config = config
        self._lock = threading.RLock()
        self._session: WorkspaceSession | None = None
        self._generation = 0
        self._listeners_lock = threading.Lock()
        self._tree_listeners: list[Callable[[TreeIndex], None]] = []
        self._index_listeners: list[Callable[[IndexSummary], None]] = []

    # Lifecycle

    @property
    def session(self) -> WorkspaceSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        session = self._session
        return session.state if session is not None else SessionState.CLOSED

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def root(self) -> Path | None:
        session = self._session
        return session.root if session is not None else None

    @property
    def display_name(self) -> str | None:
        root = self.root
        return root.name if root is not None else None

    def open(self, root: Path | str, persist: bool = True, wait_for_index: bool = False) -> Path:
        """
        Open ``root`` as the current workspace, closing any previous one.

        Args:
            root: Workspace directory, created if missing
            persist: Remember it as the last workspace for the next launch
            wait_for_index: Block until the initial search rebuild finishes

        Returns:
            The absolute workspace root.

        Raises:
            WorkspaceIOError: If the directory cannot be created or scanned.
        """
        root = Path(os.path.abspath(Path(root).expanduser()))
        with self._lock:
            self._close_session()
            self._generation += 1
            session = WorkspaceSession(
                root,
                self._generation,
                self.config.debounce_seconds,
                self.config.sync_interval,
                self._tree_updated,
                self._index_rebuilt,
            )
            self._session = session
            try:
                session.open()
            except OSError as e:
                logger.error("Opening workspace %s failed: %s", root, e)
                self._close_session()
                raise WorkspaceIOError("open", str(root), e) from e

        if persist:
            settings = load_settings(self.config.settings_path)
            settings[LAST_WORKSPACE_KEY] = str(root)
            save_settings(self.config.settings_path, settings)

        if wait_for_index:
            session.wait_for_index()
        return root

    def restore(self) -> Path | None:
        """Open the configured workspace, or else the last one used."""
        if self.config.workspace is not None:
            return self.open(self.config.workspace)

        last = load_settings(self.config.settings_path).get(LAST_WORKSPACE_KEY)
        if not last:
            logger.info("No previous workspace to restore")
            return None
        logger.info("Restoring last workspace %s", last)
        return self.open(last, persist=False)

    def close(self) -> None:
        with self._lock:
            self._close_session()
            self._generation += 1

    def _close_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()

    def _require(self) -> WorkspaceSession:
        session = self._session
        if session is None or session.state is SessionState.CLOSED:
            raise WorkspaceClosed("No workspace is open")
        return session

    def wait_for_index(self, timeout: float | None = None) -> bool:
        """Wait for the initial background search rebuild of the open workspace."""
        return self._require().wait_for_index(timeout)

    # Notifications

    def subscribe_tree_changed(self, callback: Callable[[TreeIndex], None]) -> Callable[[], None]:
        """Register for tree rebuilds. Returns a function that unsubscribes."""
        with self._listeners_lock:
            self._tree_listeners.append(callback)
        return lambda: self._unsubscribe(self._tree_listeners, callback)

    def subscribe_index_rebuilt(self, callback: Callable[[IndexSummary], None]) -> Callable[[], None]:
        """Register for completed full search rebuilds. Returns an unsubscribe function."""
        with self._listeners_lock:
            self._index_listeners.append(callback)
        return lambda: self._unsubscribe(self._index_listeners, callback)

    def _unsubscribe(self, listeners: list, callback: Callable) -> None:
        with self._listeners_lock:
            if callback in listeners:
                listeners.remove(callback)

    def _dispatch(self, listeners: list, generation: int, payload: object, label: str) -> None:
        if generation != self._generation:
            logger.debug("Discarding stale %s from generation %d", label, generation)
            return
        with self._listeners_lock:
            targets = list(listeners)
        for callback in targets:
            try:
                callback(payload)
            except Exception:
                logger.exception("%s listener failed", label)

    def _tree_updated(self, generation: int, index: TreeIndex) -> None:
        self._dispatch(self._tree_listeners, generation, index, "tree update")

    def _index_rebuilt(self, generation: int, summary: IndexSummary) -> None:
        self._dispatch(self._index_listeners, generation, summary, "index rebuild")

    # Reads

    def list(self, include_hidden: bool = False, include_meta: bool = False) -> TreeIndex:
        session = self._require()
        try:
            return session.tree.list(include_hidden=include_hidden, include_meta=include_meta)
        except OSError as e:
            raise WorkspaceIOError("list", "", e) from e

    def read(self, name: str, allow_meta: bool = False) -> str:
        """
        Read a text file.

        Raises:
            NotFound: If the file does not exist.
            WorkspaceIOError: On any other read or decode failure.
        """
        session = self._require()
        path = session.resolver.resolve(name, allow_meta=allow_meta)
        try:
            return path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            raise NotFound(f"File not found: {name}") from None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("read failed for %s: %s", name, e)
            raise WorkspaceIOError("read", name, e) from e

    def read_binary(self, name: str, allow_meta: bool = False) -> BinaryContent:
        """Read a file as base64 with a MIME type inferred from its extension."""
        session = self._require()
        path = session.resolver.resolve(name, allow_meta=allow_meta)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raise NotFound(f"File not found: {name}") from None
        except OSError as e:
            logger.warning("read_binary failed for %s: %s", name, e)
            raise WorkspaceIOError("read_binary", name, e) from e
        return BinaryContent(data=base64.b64encode(raw).decode("ascii"), mime=mime_type_for(name))

    def search(self, query: str, limit: int = 20, strict: bool = False) -> list[SearchResult]:
        """
        Ranked full-text search over the open workspace.

        Args:
            query: Free text query
            limit: Maximum number of results
            strict: Raise IndexUnavailable instead of returning [] when
                no workspace or index is ready

        Returns:
            Ranked results (lower rank is better).
        """
        session = self._session
        try:
            if session is None or not session.search.ready:
                raise IndexUnavailable("Search index is not ready")
            return session.search.search(query, limit)
        except IndexUnavailable:
            if strict:
                raise
            return []

    # Mutations

    @contextmanager
    def _mutating(self, session: WorkspaceSession, operation: str, name: str) -> Iterator[None]:
        with session.lock:
            try:
                yield
            except FileNotFoundError as e:
                raise NotFound(f"{operation}: not found: {name}") from e
            except (OSError, UnicodeDecodeError) as e:
                logger.error("%s failed for %s: %s", operation, name, e)
                raise WorkspaceIOError(operation, name, e) from e
            finally:
                session.refresh_tree()

    def _index(self, session: WorkspaceSession, path: Path) -> None:
        try:
            if path.is_dir():
                session.search.index_tree(path)
            else:
                session.search.index_file(path)
        except IndexUnavailable:
            logger.debug("Search index not ready, skipping %s", path)

    def _unindex(self, session: WorkspaceSession, path: Path, is_dir: bool) -> None:
        try:
            if is_dir:
                session.search.remove_tree(path)
            else:
                session.search.remove_file(path)
        except IndexUnavailable:
            logger.debug("Search index not ready, skipping %s", path)

    def write(self, name: str, content: str) -> str:
        """
        Save a document.

        Note files without front matter get it carried forward from the file
        on disk, or synthesized from the workspace defaults. The replaced
        content is snapshotted when it differs.

        Returns:
            The content actually persisted.
        """
        session = self._require()
        path = session.resolver.resolve(name)
        relative = session.resolver.relative(path)

        with self._mutating(session, "write", relative):
            try:
                previous: str | None = path.read_bytes().decode("utf-8")
            except FileNotFoundError:
                previous = None

            defaults = load_frontmatter_defaults(session.resolver.meta_dir)
            final = apply_frontmatter_policy(
                content, relative, previous, defaults.system, defaults.user
            )

            if previous is not None and previous != final:
                session.versions.snapshot(relative, previous)

            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(final.encode("utf-8"))
            self._index(session, path)
            logger.debug("write %s (%d chars)", relative, len(final))
        return final

    def create(self, name: str) -> str:
        """
        Create a new note with synthesized front matter.

        Returns:
            Relative path of the created file (note extension appended if missing).

        Raises:
            AlreadyExists: If the target exists.
        """
        if not str(name).endswith(NOTE_EXTENSION):
            name = f"{name}{NOTE_EXTENSION}"
        session = self._require()
        path = session.resolver.resolve(name)
        relative = session.resolver.relative(path)

        with self._mutating(session, "create", relative):
            if path.exists():
                raise AlreadyExists(f"File already exists: {relative}")
            defaults = load_frontmatter_defaults(session.resolver.meta_dir)
            content = build_frontmatter(
                synthesize_frontmatter(relative, defaults.system, defaults.user)
            )
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                with path.open("x", encoding="utf-8", newline="") as f:
                    f.write(content)
            except FileExistsError:
                raise AlreadyExists(f"File already exists: {relative}") from None
            self._index(session, path)
            logger.info("create %s", relative)
        return relative

    def create_folder(self, name: str) -> str:
        session = self._require()
        path = session.resolver.resolve(name)
        relative = session.resolver.relative(path)

        with self._mutating(session, "create_folder", relative):
            if path.exists():
                raise AlreadyExists(f"Folder already exists: {relative}")
            path.mkdir(parents=True)
            logger.info("create_folder %s", relative)
        return relative

    def delete(self, name: str) -> None:
        """Delete a file, or a folder recursively, and drop it from the index."""
        session = self._require()
        path = session.resolver.resolve(name)
        relative = session.resolver.relative(path)

        with self._mutating(session, "delete", relative):
            if not path.exists() and not path.is_symlink():
                raise NotFound(f"Not found: {relative}")
            is_dir = path.is_dir() and not path.is_symlink()
            if is_dir:
                shutil.rmtree(path)
            else:
                path.unlink()
            self._unindex(session, path, is_dir)
            logger.info("delete %s", relative)

    def import_file(self, source: Path | str, target_dir: str = "") -> str:
        """
        Copy an external file into the workspace.

        A name collision yields ``name (1).ext``, ``name (2).ext`` and so on.

        Returns:
            Relative path of the imported copy.
        """
        session = self._require()
        source = Path(source).expanduser()
        if not str(source).strip() or not source.is_file():
            raise NotFound(f"Source file not found: {source}")

        directory = session.resolver.resolve(target_dir) if normalize_relative(target_dir) else session.root
        with self._mutating(session, "import", str(source)):
            directory.mkdir(parents=True, exist_ok=True)
            target = unique_path(directory / source.name)
            shutil.copyfile(source, target)
            self._index(session, target)
            relative = session.resolver.relative(target)
            logger.info("import %s -> %s", source, relative)
        return relative

    def move(self, source: str, target: str) -> str:
        """
        Move or rename a file or folder.

        Returns:
            The new relative path.

        Raises:
            InvalidMove: If the target is the source, inside it, or one of its ancestors.
            NotFound: If the source does not exist.
            AlreadyExists: If the target exists.
        """
        session = self._require()
        source_path = session.resolver.resolve(source)
        target_path = session.resolver.resolve(target)
        rel_source = session.resolver.relative(source_path)
        rel_target = session.resolver.relative(target_path)

        if is_self_containing_move(rel_source, rel_target):
            raise InvalidMove(f"Cannot move {rel_source} into {rel_target}")

        with self._mutating(session, "move", rel_source):
            if not source_path.exists() and not source_path.is_symlink():
                raise NotFound(f"Source not found: {rel_source}")
            if target_path.exists() or target_path.is_symlink():
                raise AlreadyExists(f"Target already exists: {rel_target}")

            is_dir = source_path.is_dir() and not source_path.is_symlink()
            target_path.parent.mkdir(parents=True, exist_ok=True)
            source_path.rename(target_path)

            self._unindex(session, source_path, is_dir)
            self._index(session, target_path)
            logger.info("move %s -> %s", rel_source, rel_target)
        return rel_target

    def undo(self, name: str) -> str:
        """Restore the previous version of a document and return its content."""
        session = self._require()
        path = session.resolver.resolve(name)
        relative = session.resolver.relative(path)

        with self._mutating(session, "undo", relative):
            restored = session.versions.undo(relative, path)
            self._index(session, path)
        return restored

    def reindex(self) -> IndexSummary:
        """Rebuild the search index synchronously and notify subscribers."""
        session = self._require()
        if not session.search.ready:
            raise IndexUnavailable("Search index is not initialized")
        summary = session.search.rebuild_index()
        session.refresh_tree()
        self._index_rebuilt(session.generation, summary)
        return summary

    # Active file

    def set_active_file(self, name: str | None) -> None:
        session = self._require()
        if not name:
            session.active_file = None
            return
        path = session.resolver.resolve(name)
        session.active_file = session.resolver.relative(path)

    def get_active_file(self) -> ActiveFile:
        session = self._require()
        name = session.active_file
        if not name:
            return ActiveFile()

        try:
            path = session.resolver.resolve(name)
            stat = path.stat()
        except (OSError, InvalidPath) as e:
            return ActiveFile(filename=name, error=str(e))

        content = None
        if path.suffix.lower() in TEXT_EXTENSIONS:
            try:
                content = path.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read active file %s: %s", name, e)

        return ActiveFile(
            filename=name,
            path=str(path),
            content=content,
            exists=True,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
        )

    def info(self) -> dict:
        """Summary of the current workspace for status displays."""
        session = self._session
        if session is None:
            return {"state": SessionState.CLOSED.value, "root": None, "name": None}

        cached = session.tree.cached
        indexed = None
        if session.search.ready:
            try:
                indexed = session.search.count()
            except (sqlite3.Error, IndexUnavailable):
                indexed = None
        return {
            "state": session.state.value,
            "root": str(session.root),
            "name": session.root.name,
            "generation": session.generation,
            "files": len(cached.files) if cached else 0,
            "indexed": indexed,
            "index_ready": session.wait_for_index(0),
            "watching": session.watcher.running,
            "updated_at": cached.updated_at if cached else None,
            "last_sync": session.sync.last_synced_at if session.sync else None,
        }
