"""File walker for discovering files under a workspace root."""

import hashlib
import logging
import os
import re
from collections.abc import Iterator
from pathlib import Path

from notebox_mcp.indexer.models import TreeNode
from notebox_mcp.paths import META_DIRNAME

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def compute_hash(content: bytes) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content).hexdigest()


def natural_key(name: str) -> tuple:
    """Sort key that orders embedded numbers numerically ("file2" < "file10")."""
    parts = _DIGITS.split(name.lower())
    # re.split with a capture group alternates text/number, so types line up
    key = [int(part) if i % 2 else part for i, part in enumerate(parts)]
    return (key, name)


def _sort_children(children: list[TreeNode]) -> None:
    children.sort(key=lambda node: (node.type != "folder", natural_key(node.name)))


def scan_dir(
    root: Path,
    include_hidden: bool = False,
    include_meta: bool = False,
) -> TreeNode:
    """
    Walk the workspace and build a folder/file tree.

    Structure returned:
    TreeNode(folder, "", "")
    ├── TreeNode(folder, "notes", "notes", [...])
    └── TreeNode(file, "todo.md", "todo.md")

    Folders sort before files; both use numeric-aware name ordering.
    The metadata directory is skipped unless ``include_meta``; dot-entries
    are skipped unless ``include_hidden``.
    """
    return _scan(Path(root), "", include_hidden, include_meta, top=True)


def _scan(
    dir_path: Path,
    relative: str,
    include_hidden: bool,
    include_meta: bool,
    top: bool = False,
) -> TreeNode:
    children: list[TreeNode] = []
    try:
        entries = list(os.scandir(dir_path))
    except OSError as e:
        if top:
            raise
        logger.warning("Cannot read directory %s: %s", relative, e)
        entries = []

    for entry in entries:
        if entry.name == META_DIRNAME and not include_meta:
            continue
        if not include_hidden and entry.name.startswith(".") and entry.name != META_DIRNAME:
            continue

        rel_path = f"{relative}/{entry.name}" if relative else entry.name
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            is_dir = False

        if is_dir:
            children.append(_scan(Path(entry.path), rel_path, include_hidden, include_meta))
        else:
            children.append(TreeNode(type="file", name=entry.name, path=rel_path))

    _sort_children(children)
    return TreeNode(
        type="folder",
        name=relative.rsplit("/", 1)[-1] if relative else "",
        path=relative,
        children=children,
    )


def flatten_files(tree: TreeNode | None) -> list[str]:
    """Depth-first list of file paths in tree order."""
    result: list[str] = []
    if tree is None or not tree.children:
        return result
    for child in tree.children:
        if child.type == "file":
            result.append(child.path)
        else:
            result.extend(flatten_files(child))
    return result


def iter_indexable_files(root: Path) -> Iterator[Path]:
    """
    Yield every non-hidden file outside the metadata subtree.

    Directory read errors are logged per subtree and do not stop the walk.
    """
    root = Path(root)
    if not root.exists():
        return

    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(os.scandir(current), key=lambda e: natural_key(e.name))
        except OSError as e:
            logger.warning("Error reading directory %s: %s", current, e)
            continue

        subdirs: list[Path] = []
        for entry in entries:
            if entry.name == META_DIRNAME or entry.name.startswith("."):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    yield Path(entry.path)
            except OSError as e:
                logger.warning("Cannot stat %s: %s", entry.path, e)

        # Reverse so the stack pops subdirectories in sorted order
        stack.extend(reversed(subdirs))
