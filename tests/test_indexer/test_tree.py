"""Tests for the cached tree index."""

import json
from unittest.mock import MagicMock

import pytest

from notebox_mcp.indexer.models import TreeIndex
from notebox_mcp.indexer.tree import TreeIndexer


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "ws"
    (root / "notes").mkdir(parents=True)
    (root / "notes" / "a.md").write_text("a")
    (root / ".dotfile").write_text("x")
    return root


class TestBuildIndex:
    def test_build_caches_and_persists(self, root):
        indexer = TreeIndexer(root)
        index = indexer.build_index()

        assert indexer.cached is index
        assert index.files == ["notes/a.md"]
        assert index.updated_at

        data = json.loads(indexer.index_path.read_text(encoding="utf-8"))
        assert set(data) == {"updatedAt", "tree", "files"}
        assert data["files"] == ["notes/a.md"]

    def test_notifies_listener(self, root):
        listener = MagicMock()
        indexer = TreeIndexer(root, on_update=listener)
        index = indexer.build_index()
        listener.assert_called_once_with(index)

    def test_listener_failure_is_logged(self, root, caplog):
        indexer = TreeIndexer(root, on_update=MagicMock(side_effect=RuntimeError("boom")))
        index = indexer.build_index()
        assert index.files == ["notes/a.md"]
        assert "Tree update listener failed" in caplog.text

    def test_creates_missing_root(self, tmp_path):
        indexer = TreeIndexer(tmp_path / "new")
        assert indexer.build_index().files == []
        assert (tmp_path / "new").is_dir()

    def test_persist_failure_is_not_fatal(self, root, caplog):
        # A file where the metadata folder should be makes persisting fail
        (root / ".notebox").write_text("not a dir")
        index = TreeIndexer(root).build_index()
        assert index.files == ["notes/a.md"]
        assert "Failed to persist tree index" in caplog.text


class TestLoadPersisted:
    def test_roundtrip(self, root):
        TreeIndexer(root).build_index()

        fresh = TreeIndexer(root)
        loaded = fresh.load_persisted()
        assert isinstance(loaded, TreeIndex)
        assert loaded.files == ["notes/a.md"]
        assert fresh.cached is loaded

    def test_missing_file(self, root):
        assert TreeIndexer(root).load_persisted() is None

    def test_corrupt_file(self, root):
        (root / ".notebox").mkdir()
        (root / ".notebox" / "index.json").write_text("{oops")
        assert TreeIndexer(root).load_persisted() is None


class TestList:
    def test_default_view_uses_cache(self, root):
        indexer = TreeIndexer(root)
        first = indexer.list()
        (root / "later.md").write_text("x")
        assert indexer.list() is first

    def test_hidden_view_is_not_cached(self, root):
        indexer = TreeIndexer(root)
        cached = indexer.build_index()

        inclusive = indexer.list(include_hidden=True)
        assert ".dotfile" in inclusive.files
        assert indexer.cached is cached
        assert ".dotfile" not in json.loads(indexer.index_path.read_text())["files"]

    def test_clear(self, root):
        indexer = TreeIndexer(root)
        indexer.build_index()
        indexer.clear()
        assert indexer.cached is None
