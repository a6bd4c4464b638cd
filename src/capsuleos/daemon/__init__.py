"""CapsuleOS daemon - HTTP server with file watching and live index updates."""

from capsuleos.daemon.app import create_app
from capsuleos.daemon.lifecycle import ServerController
from capsuleos.daemon.reconciler import FileWatchReconciler
from capsuleos.daemon.watcher import FileWatcher, WatchEvent

__all__ = [
    "FileWatchReconciler",
    "FileWatcher",
    "ServerController",
    "WatchEvent",
    "create_app",
]
