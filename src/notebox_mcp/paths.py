"""Path resolution inside a workspace root.

All external APIs speak workspace-relative POSIX paths. This module turns them
into absolute paths and back, and guards the reserved metadata subtree.
"""

import os
import posixpath
from pathlib import Path

from notebox_mcp.errors import InvalidPath, RestrictedPath

# Reserved metadata subtree, relative to the workspace root
META_DIRNAME = ".notebox"
INDEX_FILENAME = "index.json"
SEARCH_DB_FILENAME = "search.db"
PREVIOUS_DIRNAME = "previous"
CHAT_DIRNAME = "chat"
ARTIFACTS_DIRNAME = "artifacts"


def normalize_relative(name: str) -> str:
    """Normalize a relative name to POSIX separators without trailing slash."""
    cleaned = str(name).replace("\\", "/").strip()
    if not cleaned:
        return ""
    normalized = posixpath.normpath(cleaned)
    return "" if normalized == "." else normalized.rstrip("/")


def is_descendant(ancestor: str, candidate: str) -> bool:
    """Check whether ``candidate`` is ``ancestor`` or lives below it.

    Plain string-prefix comparison on normalized separators, so
    ``notes`` is not an ancestor of ``notes-archive``.
    """
    ancestor_norm = normalize_relative(ancestor)
    candidate_norm = normalize_relative(candidate)
    if candidate_norm == ancestor_norm:
        return True
    if not ancestor_norm:
        return True
    return candidate_norm.startswith(ancestor_norm + "/")


def is_self_containing_move(source: str, target: str) -> bool:
    """A move is self-containing when the target sits inside the source or
    is one of the source's ancestors."""
    return is_descendant(source, target) or is_descendant(target, source)


class PathResolver:
    """Map workspace-relative names to absolute paths under ``root``."""

    def __init__(self, root: Path):
        self.root = Path(os.path.abspath(root))

    @property
    def meta_dir(self) -> Path:
        return self.root / META_DIRNAME

    def resolve(self, name: str, allow_meta: bool = False) -> Path:
        """
        Resolve a workspace-relative name to an absolute path.

        Args:
            name: Relative name (either separator style is accepted)
            allow_meta: Permit targets inside the metadata subtree

        Returns:
            Absolute path strictly below the workspace root

        Raises:
            InvalidPath: If the name is empty, contains ``..`` or escapes the root
            RestrictedPath: If the target is in the metadata subtree and
                ``allow_meta`` is False
        """
        raw = str(name or "").replace("\\", "/").strip()
        if not raw:
            raise InvalidPath("Path must not be empty")

        # Prevent directory traversal
        if ".." in raw.split("/"):
            raise InvalidPath(f"Path traversal not allowed: {name}")

        resolved = Path(os.path.normpath(os.path.join(str(self.root), raw)))

        # Ensure path is within root (absolute injections land here too)
        if resolved == self.root or self.root not in resolved.parents:
            raise InvalidPath(f"Path outside workspace: {name}")

        if not allow_meta and self.is_meta_path(resolved):
            raise RestrictedPath(f"Access to metadata folder is restricted: {name}")

        return resolved

    def relative(self, path: Path) -> str:
        """Return the POSIX relative path of an absolute path under root."""
        return Path(os.path.abspath(path)).relative_to(self.root).as_posix()

    def is_meta_path(self, path: Path) -> bool:
        """Check whether an absolute path falls inside the metadata subtree."""
        try:
            parts = Path(os.path.abspath(path)).relative_to(self.root).parts
        except ValueError:
            return False
        return META_DIRNAME in parts
