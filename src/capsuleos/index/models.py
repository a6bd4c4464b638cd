"""Search index data models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from capsuleos.store.version import LogicalKey

VersionScope = Literal["latest", "all"]


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """One physical file in the index.

    ``archived`` is derived from ``item_id`` at creation and never updated
    separately: moving a file produces a new entry.
    """

    item_id: str  # Path relative to the data root, forward slashes
    key: LogicalKey
    module: str
    title: str
    body: str
    tags: tuple[str, ...]
    archived: bool
    version: int
    explicit_version: bool = False

    def to_result(self) -> dict[str, Any]:
        """Query result shape returned to API clients."""
        return {
            "itemId": self.item_id,
            "path": self.item_id,
            "module": self.module,
            "title": self.title,
            "version": self.version,
            "archived": self.archived,
            "tags": list(self.tags),
        }


@dataclass(frozen=True, slots=True)
class IndexStats:
    """Summary of a full index build."""

    files_indexed: int
    files_skipped: int
    logical_documents: int
    duration_seconds: float
