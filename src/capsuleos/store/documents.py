"""Versioned JSON document store.

A logical document is an append-only sequence of immutable JSON files in
one directory, one file per version (see ``capsuleos.store.version`` for the
naming scheme). Identity is the ``id`` field inside each payload, not the
filename: renaming a document's title keeps its original filename base.

Archived documents live under ``archive/<module>``; archiving is a physical
move of every version file.

Concurrency: the version bump reads the current max and then writes max+1.
Two interleaved updates of the same document can both read N and both write
N+1 (last write wins). Callers that update one document from several
writers must serialize those updates per document.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import structlog

from capsuleos.config.constants import DOCUMENT_EXTENSION
from capsuleos.core.errors import NotFoundError, StoreError
from capsuleos.store.models import ChangeKind, DocumentDraft, DocumentVersion, LogicalDocument
from capsuleos.store.version import (
    archive_path,
    build_filename,
    explicit_v1_filename,
    is_archived,
    parse_filename,
    to_posix,
)

logger = structlog.get_logger()

_UNSAFE_TITLE_CHARS = re.compile(r"[^\w\- ]+")
_WHITESPACE = re.compile(r"\s+")
_MAX_BASE_LENGTH = 80

# (base, ext) -> version -> file
VersionGroups = dict[tuple[str, str], dict[int, Path]]


def normalize_title(title: str) -> str:
    """Derive a filename base from a display title."""
    base = _UNSAFE_TITLE_CHARS.sub("_", title.strip())
    base = _WHITESPACE.sub(" ", base).strip(" _")
    return base[:_MAX_BASE_LENGTH].rstrip() or "untitled"


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DocumentStore:
    """File-per-version document store rooted at the data directory.

    ``on_change`` is called with every physical file the store writes,
    renames or deletes, so the search index can be updated synchronously.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[Path, ChangeKind], None] | None = None,
    ) -> None:
        self._root = root.resolve()
        self._on_change = on_change

    @property
    def root(self) -> Path:
        return self._root

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def list_latest(self, directory: str) -> list[LogicalDocument]:
        """Latest version of every logical document in a directory.

        Malformed version files are skipped.
        """
        documents: list[LogicalDocument] = []
        for (base, _ext), versions in self._scan(directory).items():
            latest_version = max(versions)
            try:
                latest = self._load(versions[latest_version], latest_version)
            except (OSError, ValueError) as e:
                logger.warning(
                    "document_unreadable",
                    path=str(versions[latest_version]),
                    error=str(e),
                )
                continue
            documents.append(
                LogicalDocument(base=base, latest=latest, versions=sorted(versions))
            )
        return documents

    def read_all_versions(self, doc_id: str, directory: str) -> list[DocumentVersion]:
        """Every stored version carrying ``doc_id``, ascending by version."""
        found: list[DocumentVersion] = []
        for versions in self._scan(directory).values():
            for number, path in versions.items():
                try:
                    record = self._load(path, number)
                except (OSError, ValueError) as e:
                    logger.debug("document_unreadable", path=str(path), error=str(e))
                    continue
                if record.id == doc_id:
                    found.append(record)
        return sorted(found, key=lambda r: (r.version, r.path))

    def versions(self, base: str, directory: str) -> list[int]:
        """Version numbers on disk for a filename base, ascending."""
        group = self._scan(directory).get((base, DOCUMENT_EXTENSION), {})
        return sorted(group)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def create_or_update(self, draft: DocumentDraft, module: str) -> DocumentVersion:
        """Write a new document (version 1) or a new version of an existing one.

        ``module`` is the live folder (e.g. ``capsules``); ``draft.archived``
        selects ``archive/<module>`` instead. An update whose archived flag
        differs from where the document lives moves it first.
        """
        directory = archive_path(module, draft.archived)
        existing: list[DocumentVersion] = []
        if draft.id is not None:
            existing = self.read_all_versions(draft.id, directory)
            if not existing and self.read_all_versions(
                draft.id, archive_path(module, not draft.archived)
            ):
                self.set_archived(draft.id, module, draft.archived)
                existing = self.read_all_versions(draft.id, directory)

        now = _utc_now_iso()
        target_dir = self._resolve_dir(directory)

        if existing:
            tag = parse_filename(existing[-1].path)
            base = tag.base
            group = self._scan(directory).get((base, tag.ext), {})
            current_max = max(group) if group else existing[-1].version
            if current_max == 1:
                self._promote_v1(target_dir, base, tag.ext)
            version = current_max + 1
            created_at = existing[0].created_at
            doc_id = draft.id
        else:
            base = self._unique_base(module, normalize_title(draft.title))
            version = 1
            created_at = now
            doc_id = draft.id or uuid4().hex

        record = DocumentVersion(
            id=doc_id,
            title=draft.title,
            tags=draft.tags,
            payload=draft.payload,
            created_at=created_at,
            updated_at=now,
        )
        path = target_dir / build_filename(base, version, DOCUMENT_EXTENSION)
        self._write(path, record)
        logger.info(
            "document_written",
            id=doc_id,
            base=base,
            version=version,
            directory=directory,
        )
        return self._located(record, path, version)

    def delete(self, doc_id: str, directory: str) -> list[Path]:
        """Delete every version file sharing the document's filename base.

        Raises:
            NotFoundError: No version carries ``doc_id``.
        """
        matches = self.read_all_versions(doc_id, directory)
        if not matches:
            raise NotFoundError.document(doc_id, directory)

        keys = {(parse_filename(m.path).base, parse_filename(m.path).ext) for m in matches}
        groups = self._scan(directory)
        removed: list[Path] = []
        for key in sorted(keys):
            for path in groups.get(key, {}).values():
                path.unlink(missing_ok=True)
                removed.append(path)
                self._notify(path, ChangeKind.REMOVED)
            # The plain v1 file is shadowed by an explicit .v1 in the scan
            plain = self._resolve_dir(directory) / build_filename(key[0], 1, key[1])
            if plain.is_file():
                plain.unlink()
                removed.append(plain)
                self._notify(plain, ChangeKind.REMOVED)

        logger.info("document_deleted", id=doc_id, directory=directory, files=len(removed))
        return removed

    def restore(self, base: str, target_version: int, directory: str) -> DocumentVersion:
        """Append the payload of ``target_version`` as a new latest version.

        History is never rewritten: restoring version 1 of a document at
        version 2 produces version 3.

        Raises:
            NotFoundError: The version exists in neither filename encoding.
        """
        target_dir = self._resolve_dir(directory)
        group = self._scan(directory).get((base, DOCUMENT_EXTENSION), {})

        candidates = []
        if target_version >= 1:
            candidates.append(target_dir / build_filename(base, target_version, DOCUMENT_EXTENSION))
        if target_version == 1:
            candidates.append(target_dir / explicit_v1_filename(base, DOCUMENT_EXTENSION))
        source = next((p for p in candidates if p.is_file()), group.get(target_version))
        if source is None:
            raise NotFoundError.version(base, target_version, directory)

        try:
            record = self._load(source, target_version)
        except (OSError, ValueError) as e:
            raise StoreError.invalid_payload(str(e), path=self._relative(source)) from e

        current_max = max(group, default=target_version)
        if current_max == 1:
            self._promote_v1(target_dir, base, DOCUMENT_EXTENSION)
        version = current_max + 1
        restored = record.model_copy(update={"updated_at": _utc_now_iso()})
        path = target_dir / build_filename(base, version, DOCUMENT_EXTENSION)
        self._write(path, restored)
        logger.info(
            "document_restored",
            base=base,
            from_version=target_version,
            version=version,
            directory=directory,
        )
        return self._located(restored, path, version)

    def set_archived(self, doc_id: str, module: str, archived: bool) -> list[Path]:
        """Move every version file between ``<module>`` and ``archive/<module>``.

        If the filename base is already taken in the destination, the moved
        group is renamed to a free base there, so no existing file is
        replaced. Files are moved one by one; if a move fails, the files
        already moved stay moved and the error propagates.

        Raises:
            NotFoundError: The document exists in neither location.
        """
        source = archive_path(module, not archived)
        target = archive_path(module, archived)
        matches = self.read_all_versions(doc_id, source)
        if not matches:
            if self.read_all_versions(doc_id, target):
                return []
            raise NotFoundError.document(doc_id, source)

        keys = {(parse_filename(m.path).base, parse_filename(m.path).ext) for m in matches}
        source_dir = self._resolve_dir(source)
        target_dir = self._resolve_dir(target)
        target_dir.mkdir(parents=True, exist_ok=True)

        taken = {b for (b, _ext) in self._scan(target)}
        renames: dict[tuple[str, str], str] = {}
        for base, ext in sorted(keys):
            new_base = self._unique_base(module, base) if base in taken else base
            renames[(base, ext)] = new_base
            if new_base != base:
                logger.warning(
                    "document_rebased",
                    id=doc_id,
                    base=base,
                    new_base=new_base,
                    directory=target,
                )

        plan: list[tuple[Path, Path]] = []
        for path in sorted(source_dir.iterdir()):
            if not path.is_file():
                continue
            tag = parse_filename(path.name)
            new_base = renames.get((tag.base, tag.ext))
            if new_base is None:
                continue
            if new_base == tag.base:
                name = path.name
            elif tag.version == 1 and tag.explicit:
                name = explicit_v1_filename(new_base, tag.ext)
            else:
                name = build_filename(new_base, tag.version, tag.ext)
            dest = target_dir / name
            if dest.exists():
                raise StoreError.path_exists(self._relative(dest))
            plan.append((path, dest))

        moved: list[Path] = []
        for path, dest in plan:
            path.rename(dest)
            moved.append(dest)
            self._notify(path, ChangeKind.REMOVED)
            self._notify(dest, ChangeKind.CHANGED)

        logger.info("document_moved", id=doc_id, source=source, target=target, files=len(moved))
        return moved

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _resolve_dir(self, directory: str) -> Path:
        resolved = (self._root / directory).resolve()
        if not resolved.is_relative_to(self._root):
            raise StoreError.path_outside_root(directory, str(self._root))
        return resolved

    def _relative(self, path: Path) -> str:
        return to_posix(path.relative_to(self._root))

    def _scan(self, directory: str) -> VersionGroups:
        """Group a directory's document files by (base, ext).

        When both version-1 encodings exist, the explicit ``.v1`` file wins.
        """
        groups: VersionGroups = {}
        target = self._resolve_dir(directory)
        if not target.is_dir():
            return groups
        for path in sorted(target.iterdir()):
            if not path.is_file() or path.suffix != DOCUMENT_EXTENSION:
                continue
            tag = parse_filename(path.name)
            versions = groups.setdefault((tag.base, tag.ext), {})
            if tag.version in versions and not tag.explicit:
                continue
            versions[tag.version] = path
        return groups

    def _load(self, path: Path, version: int) -> DocumentVersion:
        data = json.loads(path.read_text(encoding="utf-8"))
        record = DocumentVersion.model_validate(data)
        return self._located(record, path, version)

    def _located(self, record: DocumentVersion, path: Path, version: int) -> DocumentVersion:
        rel = self._relative(path)
        return record.model_copy(
            update={"version": version, "path": rel, "archived": is_archived(rel)}
        )

    def _write(self, path: Path, record: DocumentVersion) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f"{path.name}.tmp")
        tmp.write_text(
            json.dumps(record.model_dump(), indent=2, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        os.replace(tmp, path)
        self._notify(path, ChangeKind.CHANGED)

    def _promote_v1(self, directory: Path, base: str, ext: str) -> None:
        """Rename ``base.ext`` to ``base.v1.ext`` before the first update.

        Idempotent: nothing happens if the explicit file already exists.
        """
        plain = directory / build_filename(base, 1, ext)
        explicit = directory / explicit_v1_filename(base, ext)
        if explicit.exists() or not plain.exists():
            return
        plain.rename(explicit)
        self._notify(plain, ChangeKind.REMOVED)
        self._notify(explicit, ChangeKind.CHANGED)
        logger.debug("version_one_promoted", path=self._relative(explicit))

    def _unique_base(self, module: str, base: str) -> str:
        """First free base across both the live and archived folders of a module."""
        taken = {
            b
            for directory in (archive_path(module, False), archive_path(module, True))
            for (b, _ext) in self._scan(directory)
        }
        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"

    def _notify(self, path: Path, kind: ChangeKind) -> None:
        if self._on_change is not None:
            self._on_change(path, kind)
