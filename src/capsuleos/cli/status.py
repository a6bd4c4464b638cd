"""caps status command - show daemon status."""

import json
from pathlib import Path

import click
import httpx

from capsuleos.cli.utils import find_data_root
from capsuleos.config.constants import STATE_DIR
from capsuleos.daemon.lifecycle import is_server_running, read_server_info


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status_command(path: Path | None, as_json: bool) -> None:
    """Show CapsuleOS daemon status.

    PATH is the data root. If not specified, auto-detects by walking up from
    the current directory.
    """
    data_root = find_data_root(path)
    state_dir = data_root / STATE_DIR

    info = read_server_info(state_dir) if is_server_running(state_dir) else None
    if info is None:
        if as_json:
            click.echo(json.dumps({"initialized": True, "running": False}))
        else:
            click.echo("Daemon: not running")
            click.echo(f"Data root: {data_root}")
        return

    pid, port = info

    try:
        response = httpx.get(f"http://127.0.0.1:{port}/status", timeout=5.0)
        status_data = response.json()
    except (httpx.RequestError, json.JSONDecodeError) as e:
        if as_json:
            click.echo(
                json.dumps(
                    {
                        "initialized": True,
                        "running": True,
                        "pid": pid,
                        "port": port,
                        "error": str(e),
                    }
                )
            )
        else:
            click.echo(f"Daemon: running (PID {pid}, port {port})")
            click.echo(f"Status: unavailable ({e})")
        return

    if as_json:
        click.echo(
            json.dumps({"initialized": True, "running": True, "pid": pid, "port": port, **status_data})
        )
        return

    click.echo(f"Daemon: running (PID {pid}, port {port})")
    click.echo(f"Data root: {data_root}")

    index = status_data.get("index", {})
    click.echo(
        f"Index: {index.get('entries', 0)} files, "
        f"{index.get('logical_documents', 0)} documents, "
        f"{index.get('archived', 0)} archived"
    )

    watcher = status_data.get("watcher", {})
    if not watcher.get("enabled"):
        click.echo("Watcher: disabled")
    else:
        click.echo(f"Watcher: {'active' if watcher.get('running') else 'stopped'}")

    reconciler = status_data.get("reconciler") or {}
    if reconciler.get("pending"):
        click.echo(f"  Pending: {reconciler['pending']}")
    if reconciler.get("last_error"):
        click.echo(f"  Last error: {reconciler['last_error']}")
