"""Cached, persisted tree index of the workspace."""

import json
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from notebox_mcp.indexer.models import TreeIndex
from notebox_mcp.indexer.walker import flatten_files, scan_dir
from notebox_mcp.paths import INDEX_FILENAME, META_DIRNAME

logger = logging.getLogger(__name__)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class TreeIndexer:
    """
    Builds the default (hidden- and metadata-excluding) tree of a workspace.

    The latest build is cached in memory and persisted to
    ``<meta>/index.json`` for fast cold starts. Builds are serialized, so
    two rebuilds never run at the same time for the same workspace.
    """

    def __init__(self, root: Path, on_update: Callable[[TreeIndex], None] | None = None):
        self.root = Path(root)
        self.index_path = self.root / META_DIRNAME / INDEX_FILENAME
        self._on_update = on_update
        self._cached: TreeIndex | None = None
        self._build_lock = threading.Lock()

    @property
    def cached(self) -> TreeIndex | None:
        return self._cached

    def build_index(self) -> TreeIndex:
        """Rescan the workspace, refresh the cache and notify the listener."""
        with self._build_lock:
            self.root.mkdir(parents=True, exist_ok=True)
            tree = scan_dir(self.root)
            index = TreeIndex(tree=tree, files=flatten_files(tree), updated_at=_utcnow_iso())
            self._cached = index
            self._persist(index)

        if self._on_update is not None:
            try:
                self._on_update(index)
            except Exception:
                logger.exception("Tree update listener failed")
        return index

    def _persist(self, index: TreeIndex) -> None:
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            self.index_path.write_text(json.dumps(index.to_dict(), indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to persist tree index to %s: %s", self.index_path, e)

    def load_persisted(self) -> TreeIndex | None:
        """Load the persisted index into the cache, if present and readable."""
        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
            index = TreeIndex.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable tree index %s: %s", self.index_path, e)
            return None
        self._cached = index
        return index

    def list(self, include_hidden: bool = False, include_meta: bool = False) -> TreeIndex:
        """
        Return the tree index.

        The default view comes from the cache (built on first use). Views that
        include hidden entries or the metadata subtree are scanned on demand
        and never cached or persisted.
        """
        if not include_hidden and not include_meta:
            return self._cached or self.build_index()

        tree = scan_dir(self.root, include_hidden=include_hidden, include_meta=include_meta)
        updated_at = self._cached.updated_at if self._cached else _utcnow_iso()
        return TreeIndex(tree=tree, files=flatten_files(tree), updated_at=updated_at)

    def clear(self) -> None:
        """Drop the in-memory cache (the persisted file is left in place)."""
        self._cached = None
