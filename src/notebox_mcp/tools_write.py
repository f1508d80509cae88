"""Write tools for noteboxMCP - change documents in the open workspace.

Errors propagate as exceptions so the MCP client sees a failed tool call;
every error carries a ``kind`` (see ``notebox_mcp.errors``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from notebox_mcp.config import Config
from notebox_mcp.errors import ReadOnlyError
from notebox_mcp.workspace import WorkspaceStore

if TYPE_CHECKING:
    from fastmcp import FastMCP

logger = logging.getLogger(__name__)


def check_write_permission(config: Config) -> None:
    """
    Check if write operations are allowed.

    Args:
        config: Config instance

    Raises:
        ReadOnlyError: If the server is in read-only mode
    """
    if config.read_only:
        logger.warning("Write operation rejected: server is in read-only mode")
        raise ReadOnlyError("Server is in read-only mode")


def register_tools_write(mcp: "FastMCP", config: Config, store: WorkspaceStore) -> None:
    """Register all write tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        config: Config instance (read-only gate)
        store: Workspace store performing the operations
    """

    @mcp.tool()
    def tool_write_file(path: str, content: str) -> dict:
        """Save a document, keeping the replaced content for undo.

        Markdown notes saved without front matter keep the front matter of
        the existing file, or get a fresh one (title, timestamps, workspace
        defaults).

        Args:
            path: Workspace-relative path
            content: Full new content

        Returns:
            Dict with status, path and the content actually saved
        """
        check_write_permission(config)
        final = store.write(path, content)
        return {"status": "written", "path": path, "content": final}

    @mcp.tool()
    def tool_create_file(path: str) -> dict:
        """Create a new markdown note with generated front matter.

        Args:
            path: Workspace-relative path (".md" is appended if missing)

        Returns:
            Dict with status and the created path
        """
        check_write_permission(config)
        created = store.create(path)
        return {"status": "created", "path": created}

    @mcp.tool()
    def tool_create_folder(path: str) -> dict:
        """Create a folder (and any missing parents).

        Args:
            path: Workspace-relative folder path

        Returns:
            Dict with status and the created path
        """
        check_write_permission(config)
        created = store.create_folder(path)
        return {"status": "created", "path": created}

    @mcp.tool()
    def tool_delete(path: str) -> dict:
        """Delete a file, or a folder with everything in it.

        Args:
            path: Workspace-relative path

        Returns:
            Dict with status and path
        """
        check_write_permission(config)
        store.delete(path)
        return {"status": "deleted", "path": path}

    @mcp.tool()
    def tool_import_file(source: str, target_dir: str = "") -> dict:
        """Copy a file from outside the workspace into it.

        An existing name gets a " (1)", " (2)"... suffix instead of being
        overwritten.

        Args:
            source: Absolute path of the file to import
            target_dir: Workspace-relative destination folder (root if empty)

        Returns:
            Dict with status and the imported path
        """
        check_write_permission(config)
        imported = store.import_file(source, target_dir)
        return {"status": "imported", "path": imported}

    @mcp.tool()
    def tool_move(source: str, target: str) -> dict:
        """Move or rename a file or folder.

        Args:
            source: Current workspace-relative path
            target: New workspace-relative path (must not exist)

        Returns:
            Dict with status, source and target
        """
        check_write_permission(config)
        moved = store.move(source, target)
        return {"status": "moved", "source": source, "target": moved}

    @mcp.tool()
    def tool_undo(path: str) -> dict:
        """Restore the previously saved version of a document.

        The content being replaced is kept too, so an undo can be undone.

        Args:
            path: Workspace-relative path

        Returns:
            Dict with status, path and the restored content
        """
        check_write_permission(config)
        restored = store.undo(path)
        return {"status": "restored", "path": path, "content": restored}

    @mcp.tool()
    def tool_open_workspace(root: str) -> dict:
        """Switch to another workspace folder (created if missing).

        Args:
            root: Absolute path of the workspace folder

        Returns:
            Dict with status, root and display name
        """
        check_write_permission(config)
        opened = store.open(root)
        logger.info("Switched workspace to %s", opened)
        return {"status": "opened", "root": str(opened), "name": store.display_name}

    @mcp.tool()
    def tool_reindex() -> dict:
        """Force a full rebuild of the search index.

        Returns:
            Dict with status and indexed/skipped/failed counts
        """
        check_write_permission(config)
        summary = store.reindex()
        return {"status": "reindexed", **summary.to_dict()}
