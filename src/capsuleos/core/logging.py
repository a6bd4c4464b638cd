"""Logging for the caps CLI and the CapsuleOS daemon.

Modules log with ``structlog.get_logger()`` and snake_case event names
(``document_written``, ``reconcile_removed``). Events are handed to the
stdlib root logger, so uvicorn and watchfiles records land in the same
outputs. Each output has its own level and renderer: a console renderer for
the terminal, JSON lines for the per-run file under ``.capsuleos/logs``.

The request id is a structlog context var. ``RequestLoggingMiddleware`` binds
it per request, so store writes and index updates triggered by that request
carry the same ``request_id``.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from capsuleos.config.models import LoggingConfig, LogOutputConfig

REQUEST_ID_KEY = "request_id"
LOGS_DIR = "logs"

# Loggers that are noisier than the daemon's own events
_QUIET_LOGGERS = {
    "watchfiles.main": logging.WARNING,  # one record per raw filesystem event
    "uvicorn.access": logging.WARNING,  # RequestLoggingMiddleware logs requests
}

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
]


# -----------------------------------------------------------------------------
# Request correlation
# -----------------------------------------------------------------------------


def set_request_id(request_id: str | None = None) -> str:
    """Bind a request id (generated when not given) to the current context."""
    rid = request_id or uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: rid})
    return rid


def get_request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get(REQUEST_ID_KEY)


def clear_request_id() -> None:
    structlog.contextvars.unbind_contextvars(REQUEST_ID_KEY)


# -----------------------------------------------------------------------------
# Setup
# -----------------------------------------------------------------------------


def run_log_path(state_dir: Path, now: datetime | None = None) -> Path:
    """Per-run JSON log file: ``logs/YYYY-MM-DD/HHMMSS-<hash>.log``."""
    now = now or datetime.now()
    name = f"{now.strftime('%H%M%S')}-{uuid4().hex[:6]}.log"
    return state_dir / LOGS_DIR / now.strftime("%Y-%m-%d") / name


def configure_logging(*, config: LoggingConfig | None = None, level: str = "INFO") -> None:
    """Replace all root handlers with the outputs described by ``config``.

    Without a config, logs to stderr at ``level``. Safe to call repeatedly;
    the CLI configures once at startup and ``caps up`` again for the daemon.
    """
    from capsuleos.config.models import LoggingConfig

    config = config or LoggingConfig(level=level)
    root_level = _level(config.level)

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(root_level)
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    for output in config.outputs:
        handler = _handler(output)
        handler.setLevel(_level(output.level or config.level))
        root.addHandler(handler)


def configure_daemon_logging(state_dir: Path, *, console_level: str) -> Path:
    """Console output at ``console_level`` plus a DEBUG JSON file for this run.

    Returns the log file path.
    """
    from capsuleos.config.models import LoggingConfig, LogOutputConfig

    log_file = run_log_path(state_dir)
    configure_logging(
        config=LoggingConfig(
            level="DEBUG",
            outputs=[
                LogOutputConfig(destination="stderr", level=console_level),
                LogOutputConfig(destination=str(log_file), format="json", level="DEBUG"),
            ],
        )
    )
    return log_file


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]


def _level(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _handler(output: LogOutputConfig) -> logging.Handler:
    handler: logging.Handler
    if output.destination in ("stderr", "stdout"):
        stream = sys.stderr if output.destination == "stderr" else sys.stdout
        handler = logging.StreamHandler(stream)
        colors = output.format == "console" and stream.isatty()
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        colors = False

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_PRE_CHAIN)
    )
    return handler
