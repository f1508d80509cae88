"""MCP read tools for noteboxMCP server.

This module defines the read-side tools exposed by the MCP server:
- search: Ranked full-text search over the open workspace (FTS5)
- list_files: Folder/file tree of the workspace
- read_file: Read a text document, with its parsed front matter
- read_binary: Read a file as base64 with its MIME type
- workspace_info: State of the current workspace
- get_active_file / set_active_file: Track the document the client has open

Read tools report workspace errors in-band as ``{"kind", "message"}``.
"""

from fastmcp import FastMCP

from notebox_mcp.config import Config
from notebox_mcp.errors import WorkspaceError
from notebox_mcp.indexer.parser import parse_frontmatter
from notebox_mcp.workspace import WorkspaceStore


def register_tools(mcp: FastMCP, store: WorkspaceStore, config: Config) -> None:
    """Register all read tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        store: Workspace store serving the open workspace
        config: Config instance
    """

    @mcp.tool()
    def search(query: str, limit: int = 20) -> list[dict]:
        """Search document content, filenames and front matter.

        Every word of the query is matched as a prefix; documents matching
        more words rank higher. Returns an empty list while no workspace is
        open or the index is still being prepared.

        Args:
            query: Free text search query
            limit: Maximum number of results to return (default: 20)

        Returns:
            List of search results with:
            - path: Workspace-relative path
            - filename: File name
            - snippet: Excerpt with matches wrapped in <mark></mark>
            - rank: Relevance score (lower is better)
        """
        limit = max(1, min(limit, 200))
        return [result.to_dict() for result in store.search(query, limit=limit)]

    @mcp.tool()
    def list_files(include_hidden: bool = False, include_meta: bool = False) -> dict:
        """List the workspace as a tree plus a flat list of file paths.

        Args:
            include_hidden: Include dot-files and dot-folders
            include_meta: Also include the metadata folder

        Returns:
            Dict with updatedAt, tree and files, or error
        """
        try:
            return store.list(include_hidden=include_hidden, include_meta=include_meta).to_dict()
        except WorkspaceError as e:
            return {"updatedAt": None, "tree": None, "files": [], "error": e.to_payload()}

    @mcp.tool()
    def read_file(path: str) -> dict:
        """Read a text document from the workspace.

        Args:
            path: Workspace-relative path (e.g., "notes/todo.md")

        Returns:
            Document with:
            - path: Path as requested
            - content: Full document content
            - metadata: Parsed front matter (None if absent or unparseable)
            - exists: Whether the document was read
            - error: {"kind", "message"} if it could not be read
        """
        try:
            content = store.read(path)
        except WorkspaceError as e:
            return {
                "path": path,
                "content": None,
                "metadata": None,
                "exists": False,
                "error": e.to_payload(),
            }

        return {
            "path": path,
            "content": content,
            "metadata": parse_frontmatter(content).metadata,
            "exists": True,
            "error": None,
        }

    @mcp.tool()
    def read_binary(path: str) -> dict:
        """Read a file (typically an image) as base64.

        Args:
            path: Workspace-relative path

        Returns:
            Dict with path, mime, data (base64) and dataUrl, or error
        """
        try:
            binary = store.read_binary(path)
        except WorkspaceError as e:
            return {"path": path, "mime": None, "data": None, "error": e.to_payload()}

        return {
            "path": path,
            "mime": binary.mime,
            "data": binary.data,
            "dataUrl": binary.data_url,
            "error": None,
        }

    @mcp.tool()
    def workspace_info() -> dict:
        """Describe the currently open workspace.

        Returns:
            Dict with state, root, name, file and index counts, watcher status
            and whether the server is read-only
        """
        info = store.info()
        info["read_only"] = config.read_only
        return info

    @mcp.tool()
    def get_active_file() -> dict:
        """Get the document the client marked as active, as it is on disk."""
        try:
            return store.get_active_file().to_dict()
        except WorkspaceError as e:
            return {"filename": None, "exists": False, "error": e.to_payload()}

    @mcp.tool()
    def set_active_file(path: str | None = None) -> dict:
        """Mark a document as the active one (None clears it).

        Args:
            path: Workspace-relative path, or None

        Returns:
            Dict with the active path, or error
        """
        try:
            store.set_active_file(path)
        except WorkspaceError as e:
            return {"path": path, "error": e.to_payload()}
        return {"path": store.get_active_file().filename, "error": None}
