"""File watcher using watchfiles for async filesystem monitoring.

Design:
- One recursive awatch over the data root
- Changes are filtered to indexable files outside dot-directories
  (``.capsuleos`` holds logs, so watching it would feed back into itself)
- Each surviving change becomes a ``WatchEvent`` on an asyncio queue;
  debouncing is the reconciler's job
- Falls back to polling for cross-filesystem mounts (WSL /mnt/*)
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from watchfiles import Change, awatch

from capsuleos.config.constants import INDEXABLE_EXTENSIONS
from capsuleos.store.models import ChangeKind
from capsuleos.store.version import to_posix

logger = structlog.get_logger()

# Seconds to wait before re-entering awatch after an error
RETRY_BACKOFF_SEC = 1.0


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """One filesystem change, path relative to the data root."""

    kind: ChangeKind
    path: str


def _is_cross_filesystem(path: Path) -> bool:
    """Detect if path is on a cross-filesystem mount (WSL /mnt/*, network drives, etc.)."""
    path_str = str(path.resolve())
    # WSL drive letters only: /mnt/c/ but not /mnt/data/
    if (
        path_str.startswith("/mnt/")
        and len(path_str) > 6
        and path_str[5].isalpha()
        and path_str[6] == "/"
    ):
        return True
    return path_str.startswith(("/run/user/", "/media/", "/net/"))


def to_watch_event(root: Path, change: Change, path_str: str) -> WatchEvent | None:
    """Translate one awatch change, or None when the path is not indexable."""
    try:
        rel_path = Path(path_str).relative_to(root)
    except ValueError:
        return None
    if any(part.startswith(".") for part in rel_path.parts):
        return None
    if rel_path.suffix not in INDEXABLE_EXTENSIONS:
        return None
    kind = ChangeKind.REMOVED if change == Change.deleted else ChangeKind.CHANGED
    return WatchEvent(kind=kind, path=to_posix(rel_path))


@dataclass
class FileWatcher:
    """Emit ``WatchEvent`` for every indexable file change under ``root``.

    Usage::

        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
        watcher = FileWatcher(root, queue)
        await watcher.start()
        ...
        await watcher.stop()
    """

    root: Path
    queue: asyncio.Queue[WatchEvent]
    poll_interval: float = 1.0  # Seconds between polls (cross-filesystem)
    stop_timeout: float = 2.0

    _watch_task: asyncio.Task[None] | None = field(default=None, init=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _is_cross_fs: bool = field(init=False)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()
        self._is_cross_fs = _is_cross_filesystem(self.root)

    @property
    def running(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    async def start(self) -> None:
        """Start watching for file changes."""
        if self._watch_task is not None:
            return

        self._stop_event.clear()
        self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info(
            "file_watcher_started",
            root=str(self.root),
            mode="polling" if self._is_cross_fs else "native",
        )

    async def stop(self) -> None:
        """Stop watching for file changes."""
        self._stop_event.set()

        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(self._watch_task, timeout=self.stop_timeout)
            self._watch_task = None

        logger.info("file_watcher_stopped")

    async def _watch_loop(self) -> None:
        """Main watch loop. Errors are logged and awatch is re-entered."""
        try:
            while not self._stop_event.is_set():
                try:
                    async for changes in awatch(
                        self.root,
                        recursive=True,
                        stop_event=self._stop_event,
                        ignore_permission_denied=True,
                        force_polling=self._is_cross_fs,
                        poll_delay_ms=int(self.poll_interval * 1000),
                    ):
                        self._handle_changes(changes)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if self._stop_event.is_set():
                        return
                    logger.error("watcher_error", error=str(e))
                    await asyncio.sleep(RETRY_BACKOFF_SEC)
        except asyncio.CancelledError:
            pass

    def _handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        for change_type, path_str in changes:
            event = to_watch_event(self.root, change_type, path_str)
            if event is None:
                continue
            self.queue.put_nowait(event)
            logger.debug("path_queued", path=event.path, change_type=change_type.name)
