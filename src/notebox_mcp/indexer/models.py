"""Data models for the indexer."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class TreeNode:
    """A folder or file node of the workspace tree."""

    type: str  # "folder" or "file"
    name: str
    path: str  # Relative POSIX path, "" for the root folder
    children: list["TreeNode"] | None = None

    def to_dict(self) -> dict:
        data: dict = {"type": self.type, "name": self.name, "path": self.path}
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TreeNode":
        children = data.get("children")
        return cls(
            type=data["type"],
            name=data.get("name", ""),
            path=data.get("path", ""),
            children=[cls.from_dict(c) for c in children] if children is not None else None,
        )


@dataclass
class TreeIndex:
    """Snapshot of the workspace tree plus its flattened file list."""

    tree: TreeNode
    files: list[str] = field(default_factory=list)
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "updatedAt": self.updated_at,
            "tree": self.tree.to_dict(),
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TreeIndex":
        return cls(
            tree=TreeNode.from_dict(data["tree"]),
            files=list(data.get("files", [])),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class IndexedFile:
    """Represents a document record in the search index."""

    id: int | None = None
    path: str = ""  # Relative from the workspace root
    filename: str = ""
    extension: str = ""
    size: int = 0
    modified_at: float = 0.0
    indexed_at: datetime | None = None
    front_matter: str = ""
    content_hash: str | None = None


@dataclass
class SearchResult:
    """A ranked search hit. Lower rank is a better match."""

    path: str
    filename: str
    snippet: str
    rank: float

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "filename": self.filename,
            "snippet": self.snippet,
            "rank": self.rank,
        }


# Outcome of indexing a single file
INDEXED = "indexed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class IndexResult:
    """Per-file outcome of an indexing attempt."""

    path: str
    status: str
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == INDEXED


@dataclass
class IndexSummary:
    """Aggregate of per-file outcomes for a batch operation."""

    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[IndexResult] = field(default_factory=list)

    def add(self, result: IndexResult) -> None:
        if result.status == INDEXED:
            self.indexed += 1
        elif result.status == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failures.append(result)

    def to_dict(self) -> dict:
        return {
            "indexed": self.indexed,
            "skipped": self.skipped,
            "failed": self.failed,
        }
