"""caps down command - stop the CapsuleOS daemon."""

from __future__ import annotations

import time
from pathlib import Path

import click

from capsuleos.cli.utils import find_data_root
from capsuleos.config.constants import STATE_DIR
from capsuleos.daemon.lifecycle import is_server_running, read_server_info, stop_daemon


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
def down_command(path: Path | None) -> None:
    """Stop the CapsuleOS daemon.

    PATH is the data root. If not specified, auto-detects by walking up from
    the current directory.
    """
    state_dir = find_data_root(path) / STATE_DIR

    info = read_server_info(state_dir)
    if info is None or not is_server_running(state_dir):
        click.echo("Daemon is not running.")
        return

    pid, port = info
    click.echo(f"Stopping daemon (PID {pid}, port {port})...")

    if not stop_daemon(state_dir):
        click.echo("Failed to send stop signal.", err=True)
        raise SystemExit(1)

    for _ in range(50):
        if not is_server_running(state_dir):
            click.echo("Daemon stopped.")
            return
        time.sleep(0.1)

    click.echo("Daemon did not stop within 5 seconds.", err=True)
    raise SystemExit(1)
