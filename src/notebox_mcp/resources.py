"""MCP Resources for noteboxMCP.

Resources expose the open workspace as read-only URIs.
"""

from notebox_mcp.errors import WorkspaceClosed
from notebox_mcp.indexer.models import TreeNode
from notebox_mcp.workspace import WorkspaceStore


def _render_tree(node: TreeNode, depth: int, lines: list[str]) -> None:
    for child in node.children or []:
        indent = "  " * depth
        if child.type == "folder":
            lines.append(f"{indent}- {child.name}/\n")
            _render_tree(child, depth + 1, lines)
        else:
            lines.append(f"{indent}- {child.name}\n")


def get_workspace_resource(store: WorkspaceStore) -> str:
    """Resource: notebox://workspace

    Summary of the open workspace.
    """
    info = store.info()
    if info["root"] is None:
        return "# Workspace\n\nNo workspace is open.\n"

    result_lines = [f"# Workspace: {info['name']}\n\n"]
    result_lines.append(f"- Path: `{info['root']}`\n")
    result_lines.append(f"- State: {info['state']}\n")
    result_lines.append(f"- Files: {info['files']}\n")
    indexed = info["indexed"] if info["indexed"] is not None else "unavailable"
    result_lines.append(f"- Indexed documents: {indexed}\n")
    result_lines.append(f"- Index ready: {'yes' if info['index_ready'] else 'no'}\n")
    result_lines.append(f"- Watching for changes: {'yes' if info['watching'] else 'no'}\n")
    if info["updated_at"]:
        result_lines.append(f"- Tree updated: {info['updated_at']}\n")
    return "".join(result_lines)


def get_tree_resource(store: WorkspaceStore) -> str:
    """Resource: notebox://tree

    Indented listing of the default (non-hidden) tree.
    """
    try:
        index = store.list()
    except WorkspaceClosed:
        return "# Files\n\nNo workspace is open.\n"

    result_lines = [f"# Files ({len(index.files)})\n\n"]
    _render_tree(index.tree, 0, result_lines)
    return "".join(result_lines)


def register_resources(mcp, store: WorkspaceStore):
    """Register all resources with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        store: Workspace store to expose
    """

    @mcp.resource("notebox://workspace")
    def workspace_summary():
        """Summary of the open workspace."""
        return get_workspace_resource(store)

    @mcp.resource("notebox://tree")
    def workspace_tree():
        """Folder/file tree of the open workspace."""
        return get_tree_resource(store)
