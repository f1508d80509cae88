"""Tests for sync module."""

import time
from unittest.mock import MagicMock

import pytest

from notebox_mcp.indexer import SearchIndexer
from notebox_mcp.sync import SyncManager


def wait_for_condition(condition_fn, timeout: float = 3.0, interval: float = 0.05) -> bool:
    """Wait for a condition to become true, polling at interval."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition_fn():
            return True
        time.sleep(interval)
    return False


def make_indexer(ready: bool = True, changes=(0, 0, 0)) -> MagicMock:
    indexer = MagicMock()
    indexer.ready = ready
    indexer.sync.return_value = changes
    return indexer


@pytest.fixture
def workspace_indexer(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    (root / "a.md").write_text("first draft")
    indexer = SearchIndexer(root)
    indexer.initialize()
    indexer.rebuild_index()
    yield root, indexer
    indexer.close()


class TestSyncOnce:
    @pytest.mark.parametrize("interval", [0, -1])
    def test_interval_must_be_positive(self, interval):
        with pytest.raises(ValueError, match="Sync interval must be positive"):
            SyncManager(make_indexer(), interval)

    def test_returns_changes(self):
        manager = SyncManager(make_indexer(changes=(1, 0, 2)), 30)

        assert manager.sync_once() == (1, 0, 2)
        assert manager.last_changes == (1, 0, 2)
        assert manager.last_synced_at is not None

    def test_skipped_when_index_not_ready(self):
        indexer = make_indexer(ready=False)
        manager = SyncManager(indexer, 30)

        assert manager.sync_once() is None
        indexer.sync.assert_not_called()
        assert manager.last_synced_at is None

    def test_picks_up_added_changed_and_deleted_files(self, workspace_indexer):
        root, indexer = workspace_indexer
        manager = SyncManager(indexer, 30)

        (root / "b.md").write_text("new note")
        time.sleep(0.01)
        (root / "a.md").write_text("second draft, longer")

        added, updated, deleted = manager.sync_once()
        assert (added, updated, deleted) == (1, 1, 0)

        (root / "b.md").unlink()
        assert manager.sync_once() == (0, 0, 1)
        assert [r.path for r in indexer.search("second")] == ["a.md"]


class TestSyncThread:
    def test_start_creates_named_daemon_thread(self):
        manager = SyncManager(make_indexer(), 1)

        manager.start()
        try:
            assert manager.running
            assert manager._thread.daemon is True
            assert manager._thread.name == "notebox-sync"
        finally:
            manager.stop()
        assert not manager.running

    def test_start_twice_keeps_one_thread(self):
        manager = SyncManager(make_indexer(), 1)

        manager.start()
        first = manager._thread
        manager.start()
        try:
            assert manager._thread is first
        finally:
            manager.stop()

    def test_stop_when_not_started(self):
        SyncManager(make_indexer(), 1).stop()

    def test_waits_for_index(self):
        indexer = make_indexer(ready=False)
        manager = SyncManager(indexer, 0.05)

        manager.start()
        try:
            time.sleep(0.3)
            assert indexer.sync.call_count == 0
            indexer.ready = True
            assert wait_for_condition(lambda: indexer.sync.call_count >= 1)
        finally:
            manager.stop()

    def test_keeps_running_after_failure(self):
        indexer = make_indexer()
        indexer.sync.side_effect = [RuntimeError("disk gone"), (0, 0, 0), (0, 0, 0), (0, 0, 0)]
        manager = SyncManager(indexer, 0.05)

        manager.start()
        try:
            assert wait_for_condition(lambda: indexer.sync.call_count >= 2)
            assert manager.running
        finally:
            manager.stop()

    def test_external_edit_reaches_index(self, workspace_indexer):
        root, indexer = workspace_indexer
        manager = SyncManager(indexer, 0.1)

        manager.start()
        try:
            (root / "b.md").write_text("written by another program")
            assert wait_for_condition(lambda: len(indexer.search("another")) == 1, timeout=5.0)
        finally:
            manager.stop()
