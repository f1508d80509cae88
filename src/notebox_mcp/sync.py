"""Periodic reconciliation of the search index with the workspace on disk.

The change watcher only refreshes the tree. Documents edited by other
programs reach the full-text index through this loop, which compares
mtimes and hashes against the index every ``interval`` seconds.
"""

import logging
import threading
from datetime import datetime, timezone

from notebox_mcp.indexer import SearchIndexer

logger = logging.getLogger(__name__)


class SyncManager:
    """Daemon thread running ``SearchIndexer.sync()`` for one workspace session."""

    def __init__(self, indexer: SearchIndexer, interval: float):
        """
        Args:
            indexer: Search index of the session
            interval: Seconds between passes. Must be > 0.
        """
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        self._indexer = indexer
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.last_synced_at: str | None = None
        self.last_changes: tuple[int, int, int] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            logger.warning("Sync thread already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="notebox-sync", daemon=True)
        self._thread.start()
        logger.info("Index sync every %ss", self._interval)

    def stop(self) -> None:
        """Stop the loop, waiting at most one interval for the current pass."""
        thread, self._thread = self._thread, None
        if thread is None or not thread.is_alive():
            return

        self._stop_event.set()
        thread.join(timeout=self._interval + 1)
        if thread.is_alive():
            logger.warning("Sync thread did not stop cleanly")

    def sync_once(self) -> tuple[int, int, int] | None:
        """
        Run a single reconciliation pass.

        Returns:
            (added, updated, deleted), or None if the index is not ready yet.
        """
        if not self._indexer.ready:
            logger.debug("Index sync skipped: index not ready")
            return None

        changes = self._indexer.sync()
        self.last_changes = changes
        self.last_synced_at = datetime.now(timezone.utc).isoformat()
        if any(changes):
            logger.info("Index sync: %d added, %d updated, %d removed", *changes)
        return changes

    def _run(self) -> None:
        # Wait first so a freshly opened workspace finishes its full rebuild
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.sync_once()
            except Exception:
                logger.exception("Index sync failed")
