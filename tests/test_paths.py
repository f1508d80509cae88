"""Tests for workspace path resolution and the error taxonomy."""

from pathlib import Path

import pytest

from notebox_mcp.errors import InvalidPath, NotFound, RestrictedPath, WorkspaceIOError
from notebox_mcp.paths import (
    META_DIRNAME,
    PathResolver,
    is_descendant,
    is_self_containing_move,
    normalize_relative,
)


@pytest.fixture
def resolver(tmp_path):
    return PathResolver(tmp_path / "ws")


class TestResolve:
    """Tests for PathResolver.resolve."""

    def test_resolves_nested_name(self, resolver):
        assert resolver.resolve("notes/todo.md") == resolver.root / "notes" / "todo.md"

    def test_accepts_backslashes(self, resolver):
        assert resolver.resolve("notes\\todo.md") == resolver.root / "notes" / "todo.md"

    def test_normalizes_current_dir_segments(self, resolver):
        assert resolver.resolve("./notes/./todo.md") == resolver.root / "notes" / "todo.md"

    @pytest.mark.parametrize(
        "name",
        ["../../etc/passwd", "..", "notes/../../x.md", "notes/../todo.md", "a\\..\\..\\b"],
    )
    def test_rejects_parent_segments(self, resolver, name):
        with pytest.raises(InvalidPath):
            resolver.resolve(name)

    @pytest.mark.parametrize("name", ["", "   ", ".", "./"])
    def test_rejects_empty_or_root(self, resolver, name):
        with pytest.raises(InvalidPath):
            resolver.resolve(name)

    def test_rejects_absolute_injection(self, resolver):
        with pytest.raises(InvalidPath):
            resolver.resolve("/etc/passwd")

    def test_rejects_metadata_subtree(self, resolver):
        with pytest.raises(RestrictedPath):
            resolver.resolve(f"{META_DIRNAME}/index.json")
        with pytest.raises(RestrictedPath):
            resolver.resolve(META_DIRNAME)

    def test_allows_metadata_when_requested(self, resolver):
        resolved = resolver.resolve(f"{META_DIRNAME}/index.json", allow_meta=True)
        assert resolved == resolver.meta_dir / "index.json"

    def test_does_not_touch_filesystem(self, resolver):
        resolver.resolve("a/b/c.md")
        assert not resolver.root.exists()

    def test_relative_roundtrip(self, resolver):
        path = resolver.resolve("notes/todo.md")
        assert resolver.relative(path) == "notes/todo.md"

    def test_is_meta_path(self, resolver):
        assert resolver.is_meta_path(resolver.meta_dir / "previous" / "x.md")
        assert not resolver.is_meta_path(resolver.root / "notes" / "x.md")
        assert not resolver.is_meta_path(Path("/elsewhere") / META_DIRNAME)


class TestDescendants:
    """Tests for descendant checks used by move validation."""

    def test_normalize_relative(self):
        assert normalize_relative("a\\b/") == "a/b"
        assert normalize_relative("./a//b") == "a/b"
        assert normalize_relative(".") == ""

    def test_is_descendant(self):
        assert is_descendant("folder", "folder")
        assert is_descendant("folder", "folder/sub/a.md")
        assert not is_descendant("folder", "folder-archive/a.md")
        assert not is_descendant("folder/sub", "folder")

    def test_root_is_ancestor_of_everything(self):
        assert is_descendant("", "anything/below.md")

    def test_self_containing_move(self):
        assert is_self_containing_move("folder", "folder/sub")
        assert is_self_containing_move("folder/a.md", "folder")
        assert is_self_containing_move("folder", "folder")
        assert not is_self_containing_move("folder/a.md", "other/a.md")
        assert not is_self_containing_move("notes", "notes2")


class TestErrors:
    """Tests for structured error payloads."""

    def test_payload_carries_kind(self):
        assert NotFound("gone").to_payload() == {"kind": "NotFound", "message": "gone"}

    def test_io_error_context(self):
        error = WorkspaceIOError("write", "a.md", PermissionError("denied"))
        assert error.kind == "IOError"
        assert error.operation == "write"
        assert error.path == "a.md"
        assert "write failed for a.md" in str(error)
