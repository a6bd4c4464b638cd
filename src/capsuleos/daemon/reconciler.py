"""Debounced consumer of watcher events.

Each event (re)arms a timer for its filename. When a timer fires the file
is stat'ed: present means re-read and upsert, absent means remove. The
filesystem is the source of truth, so the event kind only decides that
something happened, not what the index should hold.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from capsuleos.daemon.watcher import WatchEvent

if TYPE_CHECKING:
    from capsuleos.index.search import SearchIndex

logger = structlog.get_logger()


@dataclass
class FileWatchReconciler:
    """Single consumer keeping the search index in step with the disk."""

    index: SearchIndex
    root: Path
    queue: asyncio.Queue[WatchEvent]
    debounce_sec: float = 0.25

    _timers: dict[str, asyncio.TimerHandle] = field(default_factory=dict, init=False)
    _consumer_task: asyncio.Task[None] | None = field(default=None, init=False)
    _reconciled: int = field(default=0, init=False)
    _last_error: str | None = field(default=None, init=False)

    @property
    def pending(self) -> frozenset[str]:
        """Filenames with an armed timer."""
        return frozenset(self._timers)

    @property
    def running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    @property
    def status(self) -> dict[str, object]:
        return {
            "running": self.running,
            "pending": len(self._timers),
            "reconciled": self._reconciled,
            "last_error": self._last_error,
        }

    def start(self) -> None:
        """Start consuming the queue on the running loop."""
        if self._consumer_task is not None:
            return
        self._consumer_task = asyncio.get_running_loop().create_task(self._consume())
        logger.info("reconciler_started", debounce_sec=self.debounce_sec)

    async def stop(self) -> None:
        """Cancel armed timers and the consumer task. Pending work is dropped."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        if self._consumer_task is not None:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None
        logger.info("reconciler_stopped")

    def submit(self, event: WatchEvent) -> None:
        """Arm or re-arm the timer for one filename.

        Must be called from the event loop thread.
        """
        existing = self._timers.pop(event.path, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._timers[event.path] = loop.call_later(self.debounce_sec, self._fire, event.path)
        logger.debug("reconcile_scheduled", path=event.path, kind=event.kind.value)

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                self.submit(event)
            finally:
                self.queue.task_done()

    def _fire(self, rel_path: str) -> None:
        self._timers.pop(rel_path, None)
        full_path = self.root / rel_path
        try:
            try:
                full_path.stat()
            except OSError:
                removed = self.index.remove(rel_path)
                logger.info("reconcile_removed", path=rel_path, was_indexed=removed)
            else:
                entry = self.index.add_or_update(rel_path)
                logger.info(
                    "reconcile_updated",
                    path=rel_path,
                    version=entry.version if entry is not None else None,
                )
            self._reconciled += 1
        except Exception as e:
            self._last_error = str(e)
            logger.error("reconcile_failed", path=rel_path, error=str(e))
