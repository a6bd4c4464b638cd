"""Fuzzy search index over notes and capsule versions."""

from capsuleos.index.models import IndexEntry, IndexStats, VersionScope
from capsuleos.index.normalize import NormalizedText, normalize
from capsuleos.index.search import SearchIndex

__all__ = [
    "IndexEntry",
    "IndexStats",
    "NormalizedText",
    "SearchIndex",
    "VersionScope",
    "normalize",
]
