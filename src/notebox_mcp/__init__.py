"""
noteboxMCP - MCP server for a local notes workspace.

Exposes a directory of notes to any AI agent (or editor front-end) as a set of
MCP tools: versioned writes with single-step undo, a live file tree kept in
sync by a filesystem watcher, and full-text search.

Stack:
- Python + FastMCP
- SQLite FTS5 (search index)
- watchdog (filesystem notifications)
- Markdown + YAML front matter (source of truth)
"""

__version__ = "0.1.0"
