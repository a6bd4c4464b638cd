"""caps up command - build the index and start the server."""

import asyncio
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click

from capsuleos.cli.utils import find_data_root
from capsuleos.config.constants import STATE_DIR
from capsuleos.config.loader import load_config
from capsuleos.core.progress import get_console, pluralize, task

LOGO = r"""
      .----------------.
     /  ____________    \
    |  |            |    |
    |  |  CapsuleOS |    |
    |  |____________|    |
     \                  /
      '----------------'
"""


def _package_version() -> str:
    try:
        return version("capsuleos")
    except PackageNotFoundError:
        return "dev"


def _print_banner(
    host: str,
    port: int,
    data_root: Path | None = None,
    *,
    watching: bool,
    log_file: Path | None = None,
) -> None:
    """Print startup banner with logo and endpoints using Rich."""
    console = get_console()
    console.print(LOGO, style="cyan", highlight=False)

    banner_width = 48
    rule_line = "─" * banner_width
    base_url = f"http://{host}:{port}"

    console.print(rule_line, style="dim cyan", highlight=False)
    console.print(
        f"CapsuleOS v{_package_version()} · Ready".center(banner_width),
        style="bold cyan",
        highlight=False,
    )
    console.print(rule_line, style="dim cyan", highlight=False)
    console.print()

    console.print(f"  Search:        {base_url}/api/search?q=", style="green", highlight=False)
    console.print(f"  Health Check:  {base_url}/health", highlight=False)
    console.print(f"  Status:        {base_url}/status", highlight=False)
    console.print(f"  Watcher:       {'on' if watching else 'off'}", highlight=False)

    if data_root:
        console.print(f"  Data root:     {data_root}", style="dim", highlight=False)
    if log_file:
        console.print(f"  Log file:      {log_file}", style="dim", highlight=False)

    console.print()


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
@click.option("--port", "-p", type=int, help="Override server port")
@click.option("--no-watch", is_flag=True, help="Do not watch the data root for external edits")
@click.pass_context
def up_command(ctx: click.Context, path: Path | None, port: int | None, no_watch: bool) -> None:
    """Start the CapsuleOS server. Runs in foreground.

    PATH is the data root. If not specified, auto-detects by walking up from
    the current directory.
    """
    from capsuleos.core.logging import configure_daemon_logging
    from capsuleos.daemon.lifecycle import (
        ServerController,
        is_server_running,
        read_server_info,
        run_server,
    )

    data_root = find_data_root(path)
    state_dir = data_root / STATE_DIR

    if is_server_running(state_dir):
        info = read_server_info(state_dir)
        if info:
            pid, server_port = info
            click.echo(f"Already running (PID {pid}, port {server_port})")
            return

    overrides = {"server": {"port": port}} if port is not None else {}
    config = load_config(data_root, **overrides)

    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    log_file = configure_daemon_logging(
        state_dir, console_level="DEBUG" if verbose else config.logging.level
    )

    controller = ServerController(data_root=data_root, config=config, watch=not no_watch)
    with task("Building search index"):
        stats = controller.index.build()
    get_console().print(
        f"  {pluralize(stats.files_indexed, 'file')}, "
        f"{pluralize(stats.logical_documents, 'document')}",
        style="dim",
        highlight=False,
    )

    _print_banner(
        config.server.host,
        config.server.port,
        data_root,
        watching=controller.watcher is not None,
        log_file=log_file,
    )

    try:
        asyncio.run(run_server(controller))
    except KeyboardInterrupt:
        click.echo("\nStopped")
