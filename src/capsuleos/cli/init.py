"""caps init command - create a data root."""

from pathlib import Path

import click

from capsuleos.cli.utils import DEFAULT_DATA_DIR
from capsuleos.config.constants import STATE_DIR
from capsuleos.config.loader import load_config, write_default_config
from capsuleos.core.progress import get_console, pluralize, status
from capsuleos.store.files import initialize_data_root


def initialize(data_root: Path) -> bool:
    """Create folders, the habit seed file and a default config.

    Returns False if the data root was already initialized. Missing
    folders are still created in that case.
    """
    state_dir = data_root / STATE_DIR
    already = state_dir.is_dir()

    data_root.mkdir(parents=True, exist_ok=True)
    state_dir.mkdir(exist_ok=True)
    (state_dir / ".gitignore").write_text("# Runtime state: logs and PID files\n*\n!config.yaml\n")
    config_file = write_default_config(data_root)

    config = load_config(data_root)
    created = initialize_data_root(data_root, config.storage.folders)

    if already:
        status(f"Already initialized: {data_root}", style="info")
        if created:
            status(f"Restored {pluralize(len(created), 'missing folder')}", style="success")
        return False

    get_console().print()
    status(f"Initialized CapsuleOS in {data_root}", style="success")
    status(f"Config: {config_file}", style="info", indent=2)
    status(f"Folders: {', '.join(config.storage.folders)}", style="info", indent=2)
    get_console().print()
    status("Run 'caps up' to start the server", style="none")
    return True


@click.command()
@click.argument("path", default=DEFAULT_DATA_DIR, required=False, type=click.Path(path_type=Path))
def init_command(path: Path) -> None:
    """Initialize a CapsuleOS data root.

    PATH is the data directory (default: ./data). It is created if missing.
    """
    initialize(path.resolve())
