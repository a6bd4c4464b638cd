"""caps search command - query the data root without a running server."""

from pathlib import Path

import click
from rich.table import Table

from capsuleos.cli.utils import find_data_root
from capsuleos.config.constants import SEARCH_MAX_LIMIT
from capsuleos.config.loader import load_config
from capsuleos.core.progress import get_console, status
from capsuleos.index.search import SearchIndex


@click.command()
@click.argument("query")
@click.option(
    "--path",
    "path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Data root (auto-detected by default)",
)
@click.option("--archived", is_flag=True, help="Include archived documents")
@click.option("--all-versions", is_flag=True, help="Show every version, not just the latest")
@click.option(
    "--limit",
    "-n",
    type=click.IntRange(1, SEARCH_MAX_LIMIT),
    default=None,
    help="Maximum number of results",
)
def search_command(
    query: str,
    path: Path | None,
    archived: bool,
    all_versions: bool,
    limit: int | None,
) -> None:
    """Fuzzy-search notes and capsules.

    Builds a fresh index from disk, so it works whether or not the server
    is running.
    """
    data_root = find_data_root(path)
    config = load_config(data_root)

    index = SearchIndex(
        data_root,
        min_similarity=config.search.min_similarity,
        max_file_size_bytes=config.storage.max_file_size_mb * 1024 * 1024,
    )
    index.build()
    results = index.query(
        query,
        include_archived=archived,
        versions="all" if all_versions else "latest",
        limit=limit or config.search.default_limit,
    )

    if not results:
        status(f"No matches for '{query}'", style="warning")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Title")
    table.add_column("Path", style="cyan")
    table.add_column("Module")
    table.add_column("Version", justify="right")
    table.add_column("Tags", style="dim")
    for entry in results:
        title = f"{entry.title} [dim](archived)[/dim]" if entry.archived else entry.title
        table.add_row(
            title,
            entry.item_id,
            entry.module or "-",
            str(entry.version),
            ", ".join(entry.tags),
        )
    get_console().print(table)
