"""skillet search: find skills across configured sources."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from skillet.cli.common import open_home

console = Console()

_DESCRIPTION_WIDTH = 60


def search_cmd(
    query: Annotated[str, typer.Argument(help="Text to match against skill names and descriptions.")],
) -> None:
    """Search cached sources (refreshing empty ones) for matching skills."""
    home = open_home()
    results = home.cache.search(query, home.config.sources)

    if not results:
        console.print(
            f"[yellow]No skills found matching '{query}'.[/]\n"
            "  Run:  skillet repo sync   to refresh sources."
        )
        raise typer.Exit(0)

    table = Table(title=f"Skills matching '{query}'", show_header=True, header_style="bold")
    table.add_column("Skill", style="bold")
    table.add_column("Source")
    table.add_column("Description")

    for skill in results:
        description = skill.description
        if len(description) > _DESCRIPTION_WIDTH:
            description = description[: _DESCRIPTION_WIDTH - 3] + "..."
        table.add_row(skill.name, skill.source, description)

    console.print(table)
    console.print(f"\n  {len(results)} found. Install with:  skillet install <source> <skill>")
