"""
Indexer module for noteboxMCP.

This module builds the two derived views of a workspace: the cached
folder/file tree and the SQLite FTS5 full-text index. Both regenerate
from the files on disk at any time.
"""

from notebox_mcp.indexer.database import Database
from notebox_mcp.indexer.indexer import MAX_INDEX_BYTES, TEXT_EXTENSIONS, SearchIndexer
from notebox_mcp.indexer.models import (
    IndexedFile,
    IndexResult,
    IndexSummary,
    SearchResult,
    TreeIndex,
    TreeNode,
)
from notebox_mcp.indexer.parser import parse_frontmatter
from notebox_mcp.indexer.tree import TreeIndexer
from notebox_mcp.indexer.walker import flatten_files, scan_dir

__all__ = [
    "MAX_INDEX_BYTES",
    "TEXT_EXTENSIONS",
    "Database",
    "IndexResult",
    "IndexSummary",
    "IndexedFile",
    "SearchIndexer",
    "SearchResult",
    "TreeIndex",
    "TreeIndexer",
    "TreeNode",
    "flatten_files",
    "parse_frontmatter",
    "scan_dir",
]
