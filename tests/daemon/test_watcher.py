"""Tests for daemon/watcher.py.

Tests cover:
- Change translation and filtering (to_watch_event)
- Cross-filesystem detection
- FileWatcher start/stop and event delivery
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest
from watchfiles import Change

from capsuleos.daemon.watcher import FileWatcher, WatchEvent, _is_cross_filesystem, to_watch_event
from capsuleos.store.models import ChangeKind


class TestToWatchEvent:
    def test_added_and_modified_are_changed(self, tmp_path: Path) -> None:
        for change in (Change.added, Change.modified):
            event = to_watch_event(tmp_path, change, str(tmp_path / "notes" / "a.md"))
            assert event == WatchEvent(ChangeKind.CHANGED, "notes/a.md")

    def test_deleted_is_removed(self, tmp_path: Path) -> None:
        event = to_watch_event(tmp_path, Change.deleted, str(tmp_path / "capsules" / "x.v2.json"))
        assert event == WatchEvent(ChangeKind.REMOVED, "capsules/x.v2.json")

    @pytest.mark.parametrize(
        "rel",
        [
            ".capsuleos/logs/run.log",
            ".capsuleos/config.json",
            "notes/.hidden.md",
            "notes/a.txt",
            "capsules/x.json.tmp",
        ],
    )
    def test_filters_non_indexable(self, tmp_path: Path, rel: str) -> None:
        assert to_watch_event(tmp_path, Change.modified, str(tmp_path / rel)) is None

    def test_outside_root(self, tmp_path: Path) -> None:
        assert to_watch_event(tmp_path / "data", Change.modified, str(tmp_path / "x.md")) is None


class TestIsCrossFilesystem:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/mnt/c/Users/me/data", True),
            ("/mnt/data/notes", False),
            ("/media/usb/data", True),
            ("/home/me/data", False),
        ],
    )
    def test_detection(self, path: str, expected: bool) -> None:
        with patch.object(Path, "resolve", lambda self: self):
            assert _is_cross_filesystem(Path(path)) is expected


class TestFileWatcher:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path: Path) -> None:
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        watcher = FileWatcher(tmp_path, queue)

        await watcher.start()
        assert watcher.running
        await watcher.stop()
        assert not watcher.running

    @pytest.mark.asyncio
    async def test_handle_changes_enqueues_filtered_events(self, tmp_path: Path) -> None:
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        watcher = FileWatcher(tmp_path, queue)
        root = watcher.root

        watcher._handle_changes(
            {
                (Change.modified, str(root / "notes" / "a.md")),
                (Change.modified, str(root / ".capsuleos" / "x.json")),
            }
        )

        assert queue.qsize() == 1
        assert queue.get_nowait() == WatchEvent(ChangeKind.CHANGED, "notes/a.md")

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_real_file_write_is_observed(self, tmp_path: Path) -> None:
        (tmp_path / "notes").mkdir()
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        watcher = FileWatcher(tmp_path, queue)
        await watcher.start()
        try:
            await asyncio.sleep(0.3)
            (tmp_path / "notes" / "live.md").write_text("hi")
            event = await asyncio.wait_for(queue.get(), timeout=5.0)
        finally:
            await watcher.stop()

        assert event.path == "notes/live.md"
