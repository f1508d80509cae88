"""Debounced filesystem watcher for a workspace, built on watchdog."""

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from notebox_mcp.paths import META_DIRNAME

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.25


class _WorkspaceEventHandler(FileSystemEventHandler):
    """Forwards qualifying watchdog events to the owning watcher."""

    def __init__(self, watcher: "ChangeWatcher", generation: int):
        super().__init__()
        self._watcher = watcher
        self._generation = generation

    def _handle(self, event: FileSystemEvent) -> None:
        paths = [event.src_path]
        dest_path = getattr(event, "dest_path", None)
        if dest_path:
            paths.append(dest_path)
        self._watcher.handle_paths([os.fsdecode(p) for p in paths], self._generation)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event)


class ChangeWatcher:
    """
    Watches a workspace recursively and calls ``on_change`` once per burst.

    Each qualifying event resets a single timer; the callback fires after
    ``debounce`` seconds without events. Events that only touch the
    metadata subtree are ignored so index and snapshot writes never trigger
    rebuild loops.
    """

    def __init__(self, debounce: float = DEFAULT_DEBOUNCE):
        self.debounce = debounce
        self._lock = threading.Lock()
        self._observer = None
        self._timer: threading.Timer | None = None
        self._root: Path | None = None
        self._on_change: Callable[[], None] | None = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._observer is not None

    @property
    def root(self) -> Path | None:
        return self._root

    @property
    def generation(self) -> int:
        return self._generation

    def start(self, root: Path, on_change: Callable[[], None]) -> bool:
        """
        Begin observing ``root``.

        Args:
            root: Workspace root directory
            on_change: Called (from a timer thread) after each debounced burst

        Returns:
            True if observation started. Failures are logged and leave the
            watcher stopped.
        """
        self.stop()
        root = Path(os.path.abspath(root))

        with self._lock:
            self._generation += 1
            generation = self._generation
            self._root = root
            self._on_change = on_change

        observer = Observer()
        observer.daemon = True
        try:
            observer.schedule(_WorkspaceEventHandler(self, generation), str(root), recursive=True)
            observer.start()
        except Exception:
            logger.exception("Failed to start watcher for %s", root)
            with self._lock:
                self._root = None
                self._on_change = None
            return False

        with self._lock:
            self._observer = observer
        logger.info("Watching %s (debounce %.3fs)", root, self.debounce)
        return True

    def stop(self) -> None:
        """Stop observing. Safe to call when not started."""
        with self._lock:
            # Pending timers of this generation become stale
            self._generation += 1
            observer, self._observer = self._observer, None
            timer, self._timer = self._timer, None
            root = self._root
            self._root = None
            self._on_change = None

        if timer is not None:
            timer.cancel()
        if observer is not None:
            try:
                observer.stop()
                observer.join(timeout=2)
            except RuntimeError as e:
                logger.warning("Error stopping watcher: %s", e)
            logger.info("Stopped watching %s", root)

    def _is_meta(self, path: str, root: Path) -> bool:
        try:
            relative = Path(path).relative_to(root)
        except ValueError:
            return False
        return META_DIRNAME in relative.parts

    def handle_paths(self, paths: list[str], generation: int) -> None:
        """Record an event touching ``paths`` and (re)arm the debounce timer."""
        with self._lock:
            if generation != self._generation or self._root is None:
                return
            if all(self._is_meta(p, self._root) for p in paths):
                return

            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self._fire, args=(generation,))
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer superseded while waiting for the lock must not fire
            if generation != self._generation or threading.current_thread() is not self._timer:
                return
            self._timer = None
            callback = self._on_change

        if callback is None:
            return
        try:
            callback()
        except Exception:
            logger.exception("Change callback failed")
