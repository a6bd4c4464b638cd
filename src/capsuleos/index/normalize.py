"""Text normalization for indexing.

Markdown loses its markup punctuation so headings and emphasis markers do
not pollute matching. JSON is parsed for a ``tags`` list and an optional
``title``; anything that fails to parse is indexed as raw text. Normalizing
never raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

_MARKDOWN_PUNCTUATION = re.compile(r"[#*`>_\-\[\]()!]")


@dataclass(frozen=True, slots=True)
class NormalizedText:
    """Searchable form of one file."""

    body: str
    tags: tuple[str, ...] = ()
    title: str | None = None


def strip_markdown(text: str) -> str:
    return _MARKDOWN_PUNCTUATION.sub(" ", text)


def normalize_markdown(text: str) -> NormalizedText:
    return NormalizedText(body=strip_markdown(text))


def normalize_structured(text: str) -> NormalizedText:
    """Parse JSON; fall back to the raw text with no tags."""
    try:
        data = json.loads(text)
    except ValueError as e:
        logger.debug("malformed_payload", error=str(e))
        return NormalizedText(body=text)

    tags: tuple[str, ...] = ()
    title: str | None = None
    if isinstance(data, dict):
        raw_tags = data.get("tags")
        if isinstance(raw_tags, list):
            tags = tuple(tag for tag in raw_tags if isinstance(tag, str))
        raw_title = data.get("title")
        if isinstance(raw_title, str) and raw_title.strip():
            title = raw_title.strip()
    return NormalizedText(body=json.dumps(data, ensure_ascii=False), tags=tags, title=title)


def normalize(text: str, ext: str) -> NormalizedText:
    """Dispatch on file extension (``.md`` or ``.json``)."""
    if ext == ".json":
        return normalize_structured(text)
    return normalize_markdown(text)
