"""In-memory fuzzy search index over the data root.

One ``IndexEntry`` per indexable file, plus a latest-version table mapping
each logical document to the highest version seen. The table only moves
upward on add; on remove it is recomputed from the surviving versions of
that one document, so maintenance never scans the whole index.

Ranking uses rapidfuzz similarity over three fields with fixed weights
(title 0.4, tags 0.2, body 0.1). Partial matching makes the score
independent of where in a field the query matches. Archive and version
filters run on the full ranked match set before truncating to ``limit``,
so the latest-version rule holds even when it drops the top hit.

Not thread-safe: all calls are expected from one event loop.
"""

from __future__ import annotations

import os
import time
from collections.abc import Iterator
from pathlib import Path

import structlog
from rapidfuzz import fuzz

from capsuleos.config.constants import (
    BODY_WEIGHT,
    INDEXABLE_EXTENSIONS,
    TAGS_WEIGHT,
    TITLE_WEIGHT,
)
from capsuleos.index.models import IndexEntry, IndexStats, VersionScope
from capsuleos.index.normalize import normalize
from capsuleos.store.version import (
    LogicalKey,
    is_archived,
    logical_key,
    module_of,
    parse_filename,
    to_posix,
)

logger = structlog.get_logger()

_TOTAL_WEIGHT = TITLE_WEIGHT + TAGS_WEIGHT + BODY_WEIGHT


class SearchIndex:
    """Fuzzy-searchable index of every ``.md`` / ``.json`` file under a root.

    Usage::

        index = SearchIndex(data_root)
        index.build()
        hits = index.query("hello", include_archived=True)

        # After writing or deleting a file through the API
        index.add_or_update(path)
        index.remove(path)
    """

    def __init__(
        self,
        root: Path,
        *,
        min_similarity: float = 80.0,
        max_file_size_bytes: int | None = None,
    ) -> None:
        self._root = root.resolve()
        self._min_similarity = min_similarity
        self._max_file_size_bytes = max_file_size_bytes
        self._entries: dict[str, IndexEntry] = {}
        # Lower-cased title, tags and body, kept beside entries for scoring
        self._haystacks: dict[str, tuple[str, tuple[str, ...], str]] = {}
        self._latest: dict[LogicalKey, int] = {}
        self._members: dict[LogicalKey, set[str]] = {}

    @property
    def root(self) -> Path:
        return self._root

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._entries

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def build(self) -> IndexStats:
        """Index every file under the root from scratch.

        Files that cannot be read are skipped; one bad file never aborts
        the build.
        """
        start = time.perf_counter()
        self._entries.clear()
        self._haystacks.clear()
        self._latest.clear()
        self._members.clear()

        skipped = 0
        for path in self._walk():
            entry = self._make_entry(path)
            if entry is None:
                skipped += 1
                continue
            self._insert(entry)

        stats = IndexStats(
            files_indexed=len(self._entries),
            files_skipped=skipped,
            logical_documents=len(self._latest),
            duration_seconds=time.perf_counter() - start,
        )
        logger.info(
            "index_built",
            root=str(self._root),
            files=stats.files_indexed,
            skipped=stats.files_skipped,
            documents=stats.logical_documents,
        )
        return stats

    def _walk(self) -> Iterator[Path]:
        if not self._root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(self._root, onerror=self._log_walk_error):
            # Prune in-place: dot-directories hold state and logs, never content
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                if Path(filename).suffix in INDEXABLE_EXTENSIONS:
                    yield Path(dirpath) / filename

    @staticmethod
    def _log_walk_error(error: OSError) -> None:
        logger.warning("index_walk_error", path=str(error.filename), error=str(error))

    # -------------------------------------------------------------------------
    # Incremental maintenance
    # -------------------------------------------------------------------------

    def add_or_update(self, path: Path | str) -> IndexEntry | None:
        """Re-read one file and upsert its entry.

        Accepts an absolute path or one relative to the root. Paths outside
        the root or with non-indexable extensions are ignored. A file that is
        gone, unreadable or over the size limit loses its entry, matching
        what a fresh ``build()`` would produce.
        """
        item_id = self._item_id(path)
        if item_id is None:
            return None

        full_path = self._root / item_id
        entry = self._make_entry(full_path)
        if entry is None:
            if self.remove(item_id) and full_path.exists():
                logger.info("index_entry_dropped", item_id=item_id)
            return None

        self._insert(entry)
        logger.debug("index_upsert", item_id=item_id, version=entry.version)
        return entry

    def remove(self, path: Path | str) -> bool:
        """Drop one file's entry. Returns False if it was not indexed."""
        item_id = self._item_id(path)
        if item_id is None:
            return False

        entry = self._entries.pop(item_id, None)
        if entry is None:
            return False
        self._haystacks.pop(item_id, None)

        members = self._members.get(entry.key, set())
        members.discard(item_id)
        if not members:
            self._members.pop(entry.key, None)
            self._latest.pop(entry.key, None)
        elif self._latest.get(entry.key) == entry.version:
            self._latest[entry.key] = max(self._entries[m].version for m in members)

        logger.debug("index_remove", item_id=item_id)
        return True

    def _insert(self, entry: IndexEntry) -> None:
        self._entries[entry.item_id] = entry
        self._haystacks[entry.item_id] = (
            entry.title.lower(),
            tuple(tag.lower() for tag in entry.tags),
            entry.body.lower(),
        )
        self._members.setdefault(entry.key, set()).add(entry.item_id)
        current = self._latest.get(entry.key)
        if current is None or entry.version > current:
            self._latest[entry.key] = entry.version

    def _item_id(self, path: Path | str) -> str | None:
        """Map an absolute or root-relative path to an item id, or None to ignore."""
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self._root)
            except ValueError:
                # The root may be reached through a symlink
                try:
                    candidate = candidate.resolve().relative_to(self._root)
                except (OSError, ValueError):
                    return None
        item_id = to_posix(candidate)
        parts = item_id.split("/")
        if ".." in parts or any(part.startswith(".") for part in parts):
            return None
        if Path(item_id).suffix not in INDEXABLE_EXTENSIONS:
            return None
        return item_id

    def _make_entry(self, path: Path) -> IndexEntry | None:
        try:
            if self._max_file_size_bytes is not None:
                size = path.stat().st_size
                if size > self._max_file_size_bytes:
                    logger.info("index_skip_large_file", path=str(path), size=size)
                    return None
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("index_read_failed", path=str(path), error=str(e))
            return None

        item_id = to_posix(path.relative_to(self._root))
        tag = parse_filename(item_id)
        normalized = normalize(text, tag.ext)
        return IndexEntry(
            item_id=item_id,
            key=logical_key(item_id),
            module=module_of(item_id),
            title=normalized.title or tag.base,
            body=normalized.body,
            tags=normalized.tags,
            archived=is_archived(item_id),
            version=tag.version,
            explicit_version=tag.explicit,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query(
        self,
        q: str,
        *,
        include_archived: bool = False,
        versions: VersionScope = "latest",
        limit: int = 20,
    ) -> list[IndexEntry]:
        """Rank entries by fuzzy match, filter, then truncate to ``limit``.

        Returns an empty list for blank queries, and on internal scoring
        errors (logged).
        """
        needle = q.strip().lower()
        if not needle or limit <= 0:
            return []

        try:
            scored: list[tuple[float, str]] = []
            for item_id, haystack in self._haystacks.items():
                score = self._score(needle, haystack)
                if score > 0.0:
                    scored.append((score, item_id))
        except Exception as e:
            logger.error("query_failed", query=q, error=str(e))
            return []

        scored.sort(key=lambda pair: (-pair[0], pair[1]))

        results: list[IndexEntry] = []
        for _score, item_id in scored:
            entry = self._entries[item_id]
            if entry.archived and not include_archived:
                continue
            if versions != "all" and not self.is_latest(entry):
                continue
            results.append(entry)
            if len(results) >= limit:
                break
        return results

    def _score(self, needle: str, haystack: tuple[str, tuple[str, ...], str]) -> float:
        """Weighted similarity in [0, 1]; 0 when no field reaches the cutoff."""
        title, tags, body = haystack
        title_sim = self._similarity(needle, title)
        tags_sim = max((self._similarity(needle, tag) for tag in tags), default=0.0)
        body_sim = self._similarity(needle, body)

        total = 0.0
        for weight, similarity in (
            (TITLE_WEIGHT, title_sim),
            (TAGS_WEIGHT, tags_sim),
            (BODY_WEIGHT, body_sim),
        ):
            if similarity > 0.0:
                total += weight * similarity
        return total / (_TOTAL_WEIGHT * 100.0)

    def _similarity(self, needle: str, text: str) -> float:
        """0-100 similarity, 0 below the cutoff.

        Partial alignment only when the field is at least as long as the
        query; otherwise a one-letter title would match every query.
        """
        if not text:
            return 0.0
        if len(needle) <= len(text):
            return fuzz.partial_ratio(needle, text, score_cutoff=self._min_similarity)
        return fuzz.ratio(needle, text, score_cutoff=self._min_similarity)

    def is_latest(self, entry: IndexEntry) -> bool:
        """Whether an entry is the current version of its logical document.

        At version 1 an explicit ``.v1`` file wins over an unsuffixed sibling.
        """
        if self._latest.get(entry.key) != entry.version:
            return False
        if entry.version == 1 and not entry.explicit_version:
            for member in self._members.get(entry.key, ()):
                other = self._entries[member]
                if member != entry.item_id and other.version == 1 and other.explicit_version:
                    return False
        return True

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get(self, item_id: str) -> IndexEntry | None:
        return self._entries.get(item_id)

    def latest_version(self, key: LogicalKey) -> int | None:
        return self._latest.get(key)

    def stats(self) -> dict[str, int]:
        return {
            "entries": len(self._entries),
            "logical_documents": len(self._latest),
            "archived": sum(1 for e in self._entries.values() if e.archived),
        }
