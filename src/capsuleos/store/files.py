"""Raw file operations under the data root.

Pure filesystem I/O for notes, planner and tracker files that are written
whole by the client. No index dependency: callers notify the search index.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from capsuleos.config.constants import DEFAULT_FOLDERS, HABITS_FILE, STATE_DIR
from capsuleos.core.errors import NotFoundError, StoreError

logger = structlog.get_logger()


def validate_path_in_root(root: Path, user_path: str) -> Path:
    """Resolve ``user_path`` against ``root``, refusing traversal.

    Raises:
        StoreError(PATH_OUTSIDE_ROOT): If the path escapes the root or points
            into the state directory.
    """
    resolved_root = root.resolve()
    full_path = (resolved_root / user_path.lstrip("/")).resolve()

    if not full_path.is_relative_to(resolved_root) or full_path == resolved_root:
        raise StoreError.path_outside_root(user_path, str(resolved_root))
    if full_path.relative_to(resolved_root).parts[0] == STATE_DIR:
        raise StoreError.path_outside_root(user_path, str(resolved_root))

    return full_path


def initialize_data_root(
    root: Path,
    folders: list[str] | tuple[str, ...] = DEFAULT_FOLDERS,
) -> list[Path]:
    """Create module folders and seed the habit tracker file.

    Returns the folders that did not exist before.
    """
    created: list[Path] = []
    for folder in folders:
        path = root / folder
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            created.append(path)
            logger.info("folder_created", path=str(path))

    habits = root / HABITS_FILE
    if not habits.exists():
        habits.parent.mkdir(parents=True, exist_ok=True)
        habits.write_text(json.dumps({"habits": []}, indent=2))
    return created


class FileOps:
    """Whole-file read/write/delete relative to the data root."""

    def __init__(self, root: Path) -> None:
        self._root = root.resolve()

    @property
    def root(self) -> Path:
        return self._root

    def list_folder(self, folder: str) -> list[str]:
        """Names of the entries in one folder, sorted."""
        target = validate_path_in_root(self._root, folder)
        if not target.is_dir():
            raise NotFoundError.file(folder)
        return sorted(entry.name for entry in target.iterdir() if not entry.name.startswith("."))

    def read(self, path: str) -> str:
        target = validate_path_in_root(self._root, path)
        if not target.is_file():
            raise NotFoundError.file(path)
        return target.read_text(encoding="utf-8")

    def write(self, path: str, content: str) -> Path:
        """Write a file, creating parent folders. Returns the absolute path."""
        target = validate_path_in_root(self._root, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.debug("file_written", path=path, size=len(content))
        return target

    def delete(self, path: str) -> Path:
        target = validate_path_in_root(self._root, path)
        if not target.is_file():
            raise NotFoundError.file(path)
        target.unlink()
        logger.debug("file_deleted", path=path)
        return target
