"""Document store models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeKind(StrEnum):
    """What happened to a physical file."""

    CHANGED = "changed"
    REMOVED = "removed"


class DocumentVersion(BaseModel):
    """One immutable version of a logical document.

    ``version``, ``path`` and ``archived`` come from where the file lives and
    are never written into the payload.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    tags: list[str] = Field(default_factory=list)
    payload: Any = None
    created_at: str
    updated_at: str

    version: int = Field(default=1, exclude=True)
    path: str = Field(default="", exclude=True)
    archived: bool = Field(default=False, exclude=True)

    def to_response(self) -> dict[str, Any]:
        """Payload plus location-derived fields, for API responses."""
        return {
            **self.model_dump(),
            "version": self.version,
            "path": self.path,
            "archived": self.archived,
        }


class DocumentDraft(BaseModel):
    """Create/update request. ``id`` absent means create."""

    id: str | None = None
    title: str
    tags: list[str] = Field(default_factory=list)
    payload: Any = None
    archived: bool = False

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: list[str]) -> list[str]:
        return [tag.strip() for tag in v if tag.strip()]


@dataclass
class LogicalDocument:
    """Latest version of a logical document plus the versions on disk."""

    base: str
    latest: DocumentVersion
    versions: list[int] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {**self.latest.to_response(), "base": self.base, "versions": self.versions}
