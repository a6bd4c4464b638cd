"""Config module exports."""

from capsuleos.config.loader import load_config
from capsuleos.config.models import (
    CapsuleConfig,
    LoggingConfig,
    SearchConfig,
    ServerConfig,
    StorageConfig,
    WatcherConfig,
)

__all__ = [
    "load_config",
    "CapsuleConfig",
    "LoggingConfig",
    "SearchConfig",
    "ServerConfig",
    "StorageConfig",
    "WatcherConfig",
]
