"""Daemon lifecycle management."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path

import structlog
import uvicorn

from capsuleos.config.constants import STATE_DIR
from capsuleos.config.models import CapsuleConfig
from capsuleos.daemon.reconciler import FileWatchReconciler
from capsuleos.daemon.watcher import FileWatcher, WatchEvent
from capsuleos.index.search import SearchIndex
from capsuleos.store.documents import DocumentStore
from capsuleos.store.files import FileOps
from capsuleos.store.models import ChangeKind

logger = structlog.get_logger()

# PID file location relative to .capsuleos/
PID_FILE = "daemon.pid"
PORT_FILE = "daemon.port"


@dataclass
class ServerController:
    """
    Orchestrates daemon components.

    Components:
    - SearchIndex: in-memory fuzzy index, built before serving
    - DocumentStore / FileOps: disk writes, each followed by an index update
    - FileWatcher + FileWatchReconciler: out-of-band edits (optional)
    """

    data_root: Path
    config: CapsuleConfig = field(default_factory=CapsuleConfig)
    watch: bool = True

    index: SearchIndex = field(init=False)
    store: DocumentStore = field(init=False)
    file_ops: FileOps = field(init=False)
    watcher: FileWatcher | None = field(default=None, init=False)
    reconciler: FileWatchReconciler | None = field(default=None, init=False)
    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    def __post_init__(self) -> None:
        self.data_root = self.data_root.resolve()
        self.index = SearchIndex(
            self.data_root,
            min_similarity=self.config.search.min_similarity,
            max_file_size_bytes=self.config.storage.max_file_size_mb * 1024 * 1024,
        )
        self.store = DocumentStore(self.data_root, on_change=self._on_store_change)
        self.file_ops = FileOps(self.data_root)

        if self.watch and self.config.watcher.enabled:
            queue: asyncio.Queue[WatchEvent] = asyncio.Queue()
            self.watcher = FileWatcher(
                root=self.data_root,
                queue=queue,
                poll_interval=self.config.watcher.poll_interval_sec,
                stop_timeout=self.config.timeouts.watcher_stop_sec,
            )
            self.reconciler = FileWatchReconciler(
                index=self.index,
                root=self.data_root,
                queue=queue,
                debounce_sec=self.config.watcher.debounce_sec,
            )

    @property
    def state_dir(self) -> Path:
        return self.data_root / STATE_DIR

    def _on_store_change(self, path: Path, kind: ChangeKind) -> None:
        if kind is ChangeKind.REMOVED:
            self.index.remove(path)
        else:
            self.index.add_or_update(path)

    async def start(self) -> None:
        """Start the watcher and reconciler. The index must already be built."""
        logger.info("server starting", data_root=str(self.data_root))

        if self.reconciler is not None:
            self.reconciler.start()
        if self.watcher is not None:
            await self.watcher.start()

        base_url = f"http://{self.config.server.host}:{self.config.server.port}"
        logger.info("server started")
        logger.info("endpoint", name="search", url=f"{base_url}/api/search")
        logger.info("endpoint", name="health", url=f"{base_url}/health")
        logger.info("endpoint", name="status", url=f"{base_url}/status")

    async def stop(self) -> None:
        """Stop all daemon components gracefully."""
        logger.info("server stopping")

        try:
            async with asyncio.timeout(self.config.timeouts.server_stop_sec):
                # Watcher first so no new events reach the reconciler
                if self.watcher is not None:
                    await self.watcher.stop()
                if self.reconciler is not None:
                    await self.reconciler.stop()
        except TimeoutError:
            logger.warning(
                "server_stop_timeout",
                message=f"Shutdown timed out after {self.config.timeouts.server_stop_sec}s",
            )

        self._shutdown_event.set()
        logger.info("server stopped")

    def wait_for_shutdown(self) -> asyncio.Event:
        """Get the shutdown event for external coordination."""
        return self._shutdown_event


def write_pid_file(state_dir: Path, port: int) -> None:
    """Write PID and port files for daemon discovery."""
    state_dir.mkdir(parents=True, exist_ok=True)
    pid_path = state_dir / PID_FILE
    port_path = state_dir / PORT_FILE

    pid_path.write_text(str(os.getpid()))
    port_path.write_text(str(port))

    logger.debug("pid_file_written", pid_path=str(pid_path), port=port)


def remove_pid_file(state_dir: Path) -> None:
    """Remove PID and port files on shutdown."""
    for path in (state_dir / PID_FILE, state_dir / PORT_FILE):
        with contextlib.suppress(FileNotFoundError):
            path.unlink()


def read_server_info(state_dir: Path) -> tuple[int, int] | None:
    """Read daemon PID and port from files. Returns (pid, port) or None."""
    try:
        pid = int((state_dir / PID_FILE).read_text().strip())
        port = int((state_dir / PORT_FILE).read_text().strip())
        return (pid, port)
    except (FileNotFoundError, ValueError):
        return None


def is_server_running(state_dir: Path) -> bool:
    """Check if daemon is running by verifying PID file and process."""
    info = read_server_info(state_dir)
    if info is None:
        return False

    pid, _ = info

    try:
        os.kill(pid, 0)
        return True
    except (OSError, ProcessLookupError):
        # Process is gone; clean up stale files
        remove_pid_file(state_dir)
        return False


async def run_server(controller: ServerController) -> None:
    """Serve until a shutdown signal. The index must already be built."""
    from capsuleos.daemon.app import create_app

    config = controller.config
    app = create_app(controller)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="warning",  # Use structlog instead
        ws="none",
    )
    server = uvicorn.Server(uvicorn_config)

    write_pid_file(controller.state_dir, config.server.port)

    # Second signal forces immediate exit
    loop = asyncio.get_running_loop()
    shutdown_count = 0
    force_exit_task: asyncio.Task[None] | None = None

    async def force_exit_after_timeout() -> None:
        await asyncio.sleep(config.timeouts.force_exit_sec)
        logger.info("forcing_exit_after_timeout")
        server.force_exit = True

    def signal_handler() -> None:
        nonlocal shutdown_count, force_exit_task
        shutdown_count += 1
        logger.info("shutdown_signal_received", count=shutdown_count)
        server.should_exit = True
        if shutdown_count == 1:
            force_exit_task = loop.create_task(force_exit_after_timeout())
        else:
            server.force_exit = True
            if force_exit_task:
                force_exit_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await controller.start()
        await server.serve()
    finally:
        await controller.stop()
        remove_pid_file(controller.state_dir)


def stop_daemon(state_dir: Path) -> bool:
    """Stop a running daemon by sending SIGTERM. Returns True if signalled."""
    info = read_server_info(state_dir)
    if info is None:
        return False

    pid, _ = info

    try:
        os.kill(pid, signal.SIGTERM)
        logger.info("daemon_stop_signal_sent", pid=pid)
        return True
    except (OSError, ProcessLookupError):
        remove_pid_file(state_dir)
        return False
