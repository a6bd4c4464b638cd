"""CapsuleOS error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Store
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004

    # Store (3xxx)
    DOCUMENT_NOT_FOUND = 3001
    VERSION_NOT_FOUND = 3002
    FILE_NOT_FOUND = 3003
    INVALID_PAYLOAD = 3004
    PATH_OUTSIDE_ROOT = 3005
    PATH_EXISTS = 3006

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class CapsuleError(Exception):
    """Base error with structured context for API responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'DOCUMENT_NOT_FOUND')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CapsuleError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class NotFoundError(CapsuleError):
    """A requested logical document, version or file does not exist.

    Surfaced to the caller as-is, never retried.
    """

    @classmethod
    def document(cls, doc_id: str, directory: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.DOCUMENT_NOT_FOUND,
            message=f"No document with id '{doc_id}' in {directory}",
            details={"id": doc_id, "directory": directory},
        )

    @classmethod
    def version(cls, base: str, version: int, directory: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.VERSION_NOT_FOUND,
            message=f"Version {version} of '{base}' not found in {directory}",
            details={"base": base, "version": version, "directory": directory},
        )

    @classmethod
    def file(cls, path: str) -> "NotFoundError":
        return cls(
            code=ErrorCode.FILE_NOT_FOUND,
            message=f"File not found: {path}",
            details={"path": path},
        )


class StoreError(CapsuleError):
    """Rejected store requests (bad payloads, unsafe paths)."""

    @classmethod
    def invalid_payload(cls, reason: str, **details: Any) -> "StoreError":
        return cls(
            code=ErrorCode.INVALID_PAYLOAD,
            message=f"Invalid payload: {reason}",
            details=details,
        )

    @classmethod
    def path_outside_root(cls, path: str, root: str) -> "StoreError":
        return cls(
            code=ErrorCode.PATH_OUTSIDE_ROOT,
            message=f"Path '{path}' escapes the data root",
            details={"path": path, "root": root},
        )

    @classmethod
    def path_exists(cls, path: str) -> "StoreError":
        return cls(
            code=ErrorCode.PATH_EXISTS,
            message=f"Refusing to overwrite existing file: {path}",
            details={"path": path},
        )


class InternalError(CapsuleError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
