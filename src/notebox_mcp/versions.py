"""Version snapshots of documents, supporting single-step undo."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from notebox_mcp.errors import NoPreviousVersion
from notebox_mcp.paths import PREVIOUS_DIRNAME

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".md"
REDO_MARKER = "-redo"
STAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"


def snapshot_dirname(relative_path: str) -> str:
    """Filesystem-safe folder name for a document's snapshots."""
    return relative_path.replace("/", "_").replace("\\", "_")


class VersionStore:
    """
    Stores previous revisions under ``<meta>/previous/<safe name>/``.

    Snapshot filenames are UTC timestamps, so lexicographic order is
    chronological. Stamps are kept strictly increasing per document, so two
    writes within the same clock tick still order correctly. Old snapshots
    are never pruned.
    """

    def __init__(self, meta_dir: Path):
        self.meta_dir = Path(meta_dir)
        self.base_dir = self.meta_dir / PREVIOUS_DIRNAME

    def snapshot_dir(self, relative_path: str) -> Path:
        return self.base_dir / snapshot_dirname(relative_path)

    def versions(self, relative_path: str) -> list[Path]:
        """All snapshots of a document, oldest first."""
        folder = self.snapshot_dir(relative_path)
        try:
            entries = [p for p in folder.iterdir() if p.is_file() and p.name.endswith(SNAPSHOT_SUFFIX)]
        except FileNotFoundError:
            return []
        return sorted(entries, key=lambda p: p.name)

    def _next_stamp(self, existing: list[Path]) -> str:
        now = datetime.now(timezone.utc)
        if existing:
            latest = existing[-1].name[: -len(SNAPSHOT_SUFFIX)]
            if latest.endswith(REDO_MARKER):
                latest = latest[: -len(REDO_MARKER)]
            try:
                latest_time = datetime.strptime(latest, STAMP_FORMAT).replace(tzinfo=timezone.utc)
            except ValueError:
                latest_time = None
            if latest_time is not None and now <= latest_time:
                now = latest_time + timedelta(microseconds=1)
        return now.strftime(STAMP_FORMAT)

    def _write_snapshot(self, relative_path: str, content: str, marker: str = "") -> Path:
        folder = self.snapshot_dir(relative_path)
        folder.mkdir(parents=True, exist_ok=True)
        stamp = self._next_stamp(self.versions(relative_path))
        target = folder / f"{stamp}{marker}{SNAPSHOT_SUFFIX}"
        target.write_bytes(content.encode("utf-8"))
        return target

    def snapshot(self, relative_path: str, previous_content: str) -> Path:
        """
        Save the content a write is about to replace.

        Args:
            relative_path: Workspace-relative path of the document
            previous_content: Content currently on disk

        Returns:
            Path of the new snapshot file.
        """
        path = self._write_snapshot(relative_path, previous_content)
        logger.debug("Snapshot of %s saved as %s", relative_path, path.name)
        return path

    def undo(self, relative_path: str, live_path: Path) -> str:
        """
        Restore the most recent snapshot over the live document.

        The current content is saved as a redo snapshot first (when it
        differs), so an undo can itself be undone once.

        Args:
            relative_path: Workspace-relative path of the document
            live_path: Absolute path of the live document

        Returns:
            The restored content.

        Raises:
            NoPreviousVersion: If the document has no snapshots.
        """
        snapshots = self.versions(relative_path)
        if not snapshots:
            raise NoPreviousVersion(f"No previous versions of {relative_path}")

        restored = snapshots[-1].read_bytes().decode("utf-8")

        try:
            current: str | None = live_path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            current = None

        if current is not None and current != restored:
            self._write_snapshot(relative_path, current, marker=REDO_MARKER)

        live_path.parent.mkdir(parents=True, exist_ok=True)
        live_path.write_bytes(restored.encode("utf-8"))
        logger.info("Restored %s from %s", relative_path, snapshots[-1].name)
        return restored
