"""skillet repo CLI commands.

Commands:
  skillet repo add <name> <url>   register a source and index it
  skillet repo list               show configured sources and cache state
  skillet repo remove <name>      unregister a source and drop its cache
  skillet repo sync [<name>]      refresh one or all source caches
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from skillet.cli.common import open_home
from skillet.cli.errors import err_invalid_source, err_source_not_found, warn_sync_failed
from skillet.config import ConfigError, add_source, remove_source
from skillet.core.git import FetchError

console = Console()

repo_app = typer.Typer(
    name="repo",
    help="Manage skill sources (add, list, remove, sync).",
    add_completion=False,
)


@repo_app.command("add")
def repo_add_cmd(
    name: Annotated[str, typer.Argument(help="Source name (letters, digits, - and _).")],
    url: Annotated[str, typer.Argument(help="Git URL or owner/repo.")],
) -> None:
    """Add (or re-point) a skill source and index its skills."""
    home = open_home()
    try:
        add_source(name, url, home.path)
    except ConfigError as exc:
        console.print(err_invalid_source(str(exc)))
        raise typer.Exit(1)

    console.print(f"[green]✓[/] Added source: {name} → {url}")
    try:
        skills = home.cache.refresh(name, url)
    except (FetchError, ValueError) as exc:
        console.print(warn_sync_failed(name, str(exc)))
        return
    console.print(f"  Indexed {len(skills)} skill(s)")


@repo_app.command("list")
def repo_list_cmd() -> None:
    """List configured sources with their cached skill counts."""
    home = open_home()
    if not home.config.sources:
        console.print("[yellow]No sources configured.[/]\n  Run:  skillet repo add <name> <url>")
        raise typer.Exit(0)

    table = Table(title="Skill Sources", show_header=True, header_style="bold")
    table.add_column("Name", style="bold")
    table.add_column("URL")
    table.add_column("Skills")
    table.add_column("Last synced")

    for source in home.config.sources:
        info = home.cache.info(source.name)
        table.add_row(
            source.name,
            source.url,
            str(info.bundle_count) if info.last_updated else "-",
            info.last_updated or "[dim]never[/]",
        )

    console.print(table)


@repo_app.command("remove")
def repo_remove_cmd(
    name: Annotated[str, typer.Argument(help="Source name.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a configured source and its cached index. Installed skills are kept."""
    home = open_home()
    if home.config.get_source(name) is None:
        console.print(err_source_not_found(name))
        raise typer.Exit(1)

    if not yes:
        if not typer.confirm(f"Remove source '{name}'?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    remove_source(name, home.path)
    home.cache.drop(name)
    console.print(f"[green]✓[/] Removed source: {name}")


@repo_app.command("sync")
def repo_sync_cmd(
    name: Annotated[
        str | None,
        typer.Argument(help="Source to refresh. Default: all."),
    ] = None,
) -> None:
    """Refresh source caches (git fetch + skill discovery)."""
    home = open_home()
    sources = home.config.sources
    if name is not None:
        source = home.config.get_source(name)
        if source is None:
            console.print(err_source_not_found(name))
            raise typer.Exit(1)
        sources = [source]

    result = home.cache.refresh_all(sources)
    for synced in result.succeeded:
        console.print(f"[green]✓[/] {synced}  ({home.cache.info(synced).bundle_count} skills)")
    for failed, error in result.failed:
        console.print(warn_sync_failed(failed, error))
    if result.failed:
        raise typer.Exit(1)
