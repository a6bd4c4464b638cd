"""Versioned file storage under the data root."""

from capsuleos.store.documents import DocumentStore, normalize_title
from capsuleos.store.files import FileOps, initialize_data_root
from capsuleos.store.models import ChangeKind, DocumentDraft, DocumentVersion, LogicalDocument
from capsuleos.store.version import (
    LogicalKey,
    VersionTag,
    build_filename,
    is_archived,
    logical_key,
    parse_filename,
)

__all__ = [
    "ChangeKind",
    "DocumentDraft",
    "DocumentStore",
    "DocumentVersion",
    "FileOps",
    "LogicalDocument",
    "LogicalKey",
    "VersionTag",
    "build_filename",
    "initialize_data_root",
    "is_archived",
    "logical_key",
    "normalize_title",
    "parse_filename",
]
