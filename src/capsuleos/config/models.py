"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CAPSULEOS__SECTION__KEY)
3. Data-root YAML (<data_root>/.capsuleos/config.yaml)
4. Global YAML (~/.config/capsuleos/config.yaml)
5. Built-in defaults (this file)

Examples:
    CAPSULEOS__LOGGING__LEVEL=DEBUG
    CAPSULEOS__SERVER__PORT=8080
    CAPSULEOS__SEARCH__MIN_SIMILARITY=70
    CAPSULEOS__WATCHER__DEBOUNCE_SEC=0.5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from capsuleos.config.constants import DEFAULT_FOLDERS, PORT_MAX, PORT_MIN, SEARCH_MAX_LIMIT

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CAPSULEOS__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every reconciled file.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """HTTP server configuration.

    Env vars:
        CAPSULEOS__SERVER__HOST: Bind address (default: 127.0.0.1)
        CAPSULEOS__SERVER__PORT: Port number (default: 5000)
    """

    host: str = Field(
        default="127.0.0.1",
        description="Bind address. Use 0.0.0.0 for network access.",
    )
    port: int = Field(default=5000, description="Server port.")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (PORT_MIN <= v <= PORT_MAX):
            raise ValueError(f"Port must be {PORT_MIN}-{PORT_MAX}, got {v}")
        return v


class StorageConfig(BaseModel):
    """Data root layout.

    Env vars:
        CAPSULEOS__STORAGE__MAX_FILE_SIZE_MB: Skip larger files when indexing
    """

    folders: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FOLDERS),
        description="Module folders created under the data root on init.",
    )
    max_file_size_mb: int = Field(
        default=10,
        description="Files larger than this are not indexed.",
    )


class SearchConfig(BaseModel):
    """Search index configuration.

    Env vars:
        CAPSULEOS__SEARCH__DEFAULT_LIMIT: Results returned when no limit is given
        CAPSULEOS__SEARCH__MIN_SIMILARITY: Fuzzy match cutoff (0-100)
    """

    default_limit: int = Field(default=20, ge=1, le=SEARCH_MAX_LIMIT)
    min_similarity: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Minimum per-field similarity for a match. "
        "Lower values tolerate more typos but return more noise.",
    )


class WatcherConfig(BaseModel):
    """Filesystem watcher configuration.

    Env vars:
        CAPSULEOS__WATCHER__ENABLED: Watch the data root for external edits
        CAPSULEOS__WATCHER__DEBOUNCE_SEC: Per-file quiet period before reconciling
        CAPSULEOS__WATCHER__POLL_INTERVAL_SEC: Poll interval on cross-filesystem mounts
    """

    enabled: bool = True
    debounce_sec: float = Field(
        default=0.25,
        gt=0.0,
        description="Quiet period per filename. An editor's save burst reconciles once.",
    )
    poll_interval_sec: float = Field(
        default=1.0,
        gt=0.0,
        description="Polling interval for cross-filesystem mounts (WSL /mnt/*).",
    )


class TimeoutsConfig(BaseModel):
    """Timeouts for server shutdown."""

    server_stop_sec: float = Field(default=5.0, description="Server shutdown timeout.")
    force_exit_sec: float = Field(
        default=3.0,
        description="Force exit timeout after graceful shutdown fails.",
    )
    watcher_stop_sec: float = Field(default=2.0, description="File watcher shutdown timeout.")


class CapsuleConfig(BaseModel):
    """Root configuration for CapsuleOS."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
