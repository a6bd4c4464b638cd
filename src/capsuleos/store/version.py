"""Filename version codec.

Every version of a logical document is its own file, named
``<base>[.v<N>]<ext>``:

- ``idea.json``     version 1 (canonical form)
- ``idea.v1.json``  version 1 (explicit form, written when a document is first updated)
- ``idea.v2.json``  version 2

Both version-1 encodings parse to the same ``(base, version, ext)``, so
``parse_filename`` and ``build_filename`` are not a bijection at version 1.
``VersionTag.explicit`` keeps the distinction for callers that need to break
the tie; the explicit ``.v1`` file is authoritative when both exist.

Archived documents live under a top-level ``archive/`` folder. Archive state
is derived from the path only (``is_archived``), never stored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePath, PurePosixPath

from capsuleos.config.constants import ARCHIVE_DIR

_VERSION_SUFFIX = re.compile(r"^(?P<base>.+)\.v(?P<version>0*[1-9]\d*)$")


@dataclass(frozen=True, slots=True)
class VersionTag:
    """Parsed ``<base>[.v<N>]<ext>`` filename."""

    base: str
    version: int
    ext: str
    # Whether the name carried a .v<N> suffix; both version-1 encodings compare equal
    explicit: bool = field(default=False, compare=False)


@dataclass(frozen=True, slots=True)
class LogicalKey:
    """One logical document across all of its versions."""

    directory: str
    base: str
    ext: str

    def __str__(self) -> str:
        prefix = f"{self.directory}/" if self.directory else ""
        return f"{prefix}{self.base}{self.ext}"


def parse_filename(path: str | PurePath) -> VersionTag:
    """Parse a filename (or path; only the last component is used).

    Never fails: a name without a ``.v<N>`` suffix is version 1.
    """
    name = PurePath(path).name
    ext = PurePath(name).suffix
    stem = name[: len(name) - len(ext)] if ext else name
    match = _VERSION_SUFFIX.match(stem)
    if match:
        return VersionTag(
            base=match.group("base"),
            version=int(match.group("version")),
            ext=ext,
            explicit=True,
        )
    return VersionTag(base=stem, version=1, ext=ext)


def build_filename(base: str, version: int, ext: str) -> str:
    """Build the canonical filename for a version.

    Version 1 is unsuffixed; later versions carry ``.v<N>``.
    """
    if version < 1:
        raise ValueError(f"version must be >= 1, got {version}")
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    if version > 1:
        return f"{base}.v{version}{ext}"
    return f"{base}{ext}"


def explicit_v1_filename(base: str, ext: str) -> str:
    """The explicit ``<base>.v1<ext>`` encoding of version 1."""
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return f"{base}.v1{ext}"


def to_posix(rel_path: str | PurePath) -> str:
    """Normalize a relative path to forward slashes without leading ./"""
    text = str(rel_path).replace("\\", "/")
    return str(PurePosixPath(text))


def logical_key(rel_path: str | PurePath) -> LogicalKey:
    """Group key for a path relative to the data root."""
    posix = PurePosixPath(to_posix(rel_path))
    tag = parse_filename(posix.name)
    directory = str(posix.parent)
    return LogicalKey(directory="" if directory == "." else directory, base=tag.base, ext=tag.ext)


def is_archived(rel_path: str | PurePath) -> bool:
    """True iff the first path segment is the archive folder."""
    parts = PurePosixPath(to_posix(rel_path)).parts
    return bool(parts) and parts[0] == ARCHIVE_DIR


def module_of(rel_path: str | PurePath) -> str:
    """Module folder of a path (``notes``, ``capsules``, ...), ignoring ``archive/``."""
    parts = PurePosixPath(to_posix(rel_path)).parts
    if parts and parts[0] == ARCHIVE_DIR:
        parts = parts[1:]
    # A bare file at the top level has no module
    return parts[0] if len(parts) > 1 else ""


def archive_path(directory: str, archived: bool) -> str:
    """Map a module directory to its archived or live location."""
    posix = to_posix(directory)
    currently = is_archived(posix)
    if archived and not currently:
        return f"{ARCHIVE_DIR}/{posix}"
    if not archived and currently:
        stripped = posix[len(ARCHIVE_DIR) :].lstrip("/")
        return stripped
    return posix
