"""Main entry point for noteboxMCP server."""

import argparse
import logging
import sys

from fastmcp import FastMCP

from notebox_mcp.config import Config
from notebox_mcp.errors import WorkspaceError
from notebox_mcp.indexer.models import IndexSummary
from notebox_mcp.resources import register_resources
from notebox_mcp.tools import register_tools
from notebox_mcp.tools_write import register_tools_write
from notebox_mcp.workspace import WorkspaceStore

logger = logging.getLogger(__name__)


def create_server(config: Config, store: WorkspaceStore | None = None) -> FastMCP:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.
        store: Optional pre-built workspace store. When omitted, a store is
            created and the configured (or last used) workspace is opened.
    """
    mcp = FastMCP(
        name="noteboxMCP",
        instructions=(
            "noteboxMCP provides access to a local workspace of notes and text files. "
            "Use the search tool to find content, list_files to browse the tree and "
            "read_file to read documents. Write tools keep the previous version of "
            "every saved document so changes can be undone."
        ),
    )

    if store is None:
        store = WorkspaceStore(config)
        try:
            root = store.restore()
        except WorkspaceError as e:
            logger.error("Could not open workspace: %s", e)
            root = None
        if root is None:
            logger.info("No workspace open; use tool_open_workspace to choose one")

    # Register all components
    logger.info("Registering resources...")
    register_resources(mcp, store)

    logger.info("Registering read tools...")
    register_tools(mcp, store, config)

    logger.info("Registering write tools...")
    register_tools_write(mcp, config, store)

    logger.info("Server configured successfully")
    return mcp


def force_reindex(store: WorkspaceStore) -> IndexSummary | None:
    """Rebuild the search index of the open workspace before serving.

    Returns:
        The rebuild summary, or None when there was nothing to rebuild.
    """
    if store.root is None:
        logger.warning("--reindex ignored: no workspace is open")
        return None

    logger.info("Force reindex requested...")
    try:
        summary = store.reindex()
    except WorkspaceError as e:
        logger.error("Reindex failed, serving without it: %s", e)
        return None
    logger.info("Reindex complete: %d documents indexed", summary.indexed)
    return summary


def main() -> None:
    """Main function - starts the MCP server."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="noteboxMCP - MCP server for a local notes workspace")
    parser.add_argument(
        "--workspace",
        help="Workspace folder to open (overrides NOTEBOX_WORKSPACE and the last workspace)",
    )
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Rebuild the search index before starting",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Run in read-only mode (disable write tools)",
    )
    args = parser.parse_args()

    # Create config once - CLI flags override env vars
    config = Config.from_env(
        read_only_override=args.read_only if args.read_only else None,
        workspace_override=args.workspace,
    )

    # Print startup banner
    logger.info("=" * 50)
    logger.info("noteboxMCP starting...")
    logger.info("  WORKSPACE:     %s", config.workspace or "(last used)")
    logger.info("  STATE_DIR:     %s", config.state_dir)
    logger.info("  PORT:          %s", config.port)
    logger.info("  READ_ONLY:     %s", config.read_only)
    logger.info("  DEBOUNCE:      %sms", config.debounce_ms)
    logger.info("  SYNC_INTERVAL: %s", f"{config.sync_interval}s" if config.sync_interval else "disabled")
    logger.info("=" * 50)

    store = WorkspaceStore(config)
    try:
        store.restore()
    except WorkspaceError as e:
        logger.error("Could not open workspace: %s", e)

    # Force reindex if requested (before server starts)
    if args.reindex:
        force_reindex(store)

    try:
        mcp = create_server(config, store)
        logger.info("Starting MCP server on port %s...", config.port)
        mcp.run(transport="sse", host="0.0.0.0", port=config.port)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except Exception:
        logger.exception("Server error")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
