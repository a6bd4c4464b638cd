"""CLI utilities."""

from pathlib import Path

import click

from capsuleos.config.constants import STATE_DIR

DEFAULT_DATA_DIR = "data"


def find_data_root(start_path: Path | None = None) -> Path:
    """Find the initialized data root.

    An explicit path must contain a ``.capsuleos`` directory. Otherwise walks
    up from the current directory, checking each directory and its ``data/``
    child.

    Raises:
        click.ClickException: If no initialized data root is found
    """
    if start_path is not None:
        root = start_path.resolve()
        if (root / STATE_DIR).is_dir():
            return root
        raise click.ClickException(
            f"Not a CapsuleOS data root: {root}\nRun 'caps init {start_path}' first."
        )

    current = Path.cwd().resolve()
    while True:
        for candidate in (current, current / DEFAULT_DATA_DIR):
            if (candidate / STATE_DIR).is_dir():
                return candidate
        if current == current.parent:
            break
        current = current.parent

    raise click.ClickException(
        f"No CapsuleOS data root found from {Path.cwd()}\nRun 'caps init' first."
    )
