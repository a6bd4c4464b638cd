"""Core module exports."""

from capsuleos.core.errors import (
    CapsuleError,
    ConfigError,
    ErrorCode,
    InternalError,
    NotFoundError,
    StoreError,
)
from capsuleos.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)
from capsuleos.core.progress import status, task

__all__ = [
    # Errors
    "CapsuleError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "NotFoundError",
    "StoreError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
    # Progress
    "status",
    "task",
]
