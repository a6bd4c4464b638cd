"""CapsuleOS CLI - caps command."""

import click

from capsuleos.cli.down import down_command
from capsuleos.cli.init import init_command
from capsuleos.cli.search import search_command
from capsuleos.cli.status import status_command
from capsuleos.cli.up import up_command
from capsuleos.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="caps")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """CapsuleOS - local notes, versioned capsules and fuzzy search."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(init_command, name="init")
cli.add_command(up_command, name="up")
cli.add_command(down_command, name="down")
cli.add_command(status_command, name="status")
cli.add_command(search_command, name="search")


if __name__ == "__main__":
    cli()
