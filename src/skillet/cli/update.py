"""skillet update: refresh installed skills from their sources.

Usage:
  skillet update               # check and apply all updates (asks first)
  skillet update pdf --yes     # only skill 'pdf'
  skillet update --check       # report, don't apply
  skillet update --repos       # refresh the source caches only
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from skillet.cli.common import open_home
from skillet.cli.errors import err_lock_timeout, warn_sync_failed
from skillet.cli.install import describe_install_error
from skillet.core.git import FetchError
from skillet.core.installer import InstallError
from skillet.core.lock import LockTimeoutError

console = Console()


def update_cmd(
    name: Annotated[
        str | None,
        typer.Argument(help="Only update this skill."),
    ] = None,
    check: Annotated[
        bool,
        typer.Option("--check", help="Only report available updates."),
    ] = False,
    repos: Annotated[
        bool,
        typer.Option("--repos", help="Refresh source caches instead of installed skills."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Update installed skills to the latest source revision."""
    home = open_home()

    if repos:
        result = home.cache.refresh_all(home.config.sources)
        for source in result.succeeded:
            console.print(f"[green]✓[/] {source}  ({home.cache.info(source).bundle_count} skills)")
        for source, error in result.failed:
            console.print(warn_sync_failed(source, error))
        raise typer.Exit(1 if result.failed else 0)

    installer = home.installer()
    updates = installer.check_updates()
    if name is not None:
        updates = [u for u in updates if u.record.name == name]

    if not updates:
        console.print("[green]✓[/] All skills are up to date.")
        raise typer.Exit(0)

    for update in updates:
        record = update.record
        console.print(
            f"\n[bold]{record.name}[/] → {record.target}{record.scope.label}  "
            f"[dim]{update.current_revision[:7]} → {update.latest_revision[:7]}[/]"
        )
        for message in update.commit_messages:
            console.print(f"    {message}")

    if check:
        console.print(f"\n  {len(updates)} update(s) available. Run:  skillet update")
        raise typer.Exit(0)

    if not yes:
        if not typer.confirm(f"Apply {len(updates)} update(s)?", default=True):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    failed = 0
    for update in updates:
        record = update.record
        try:
            installer.apply_update(update)
        except LockTimeoutError:
            console.print(err_lock_timeout())
            raise typer.Exit(1)
        except (InstallError, FetchError, OSError, ValueError) as exc:
            failed += 1
            console.print(describe_install_error(exc, record.source_label))
            continue
        console.print(f"[green]✓[/] Updated {record.name} → {record.target}{record.scope.label}")

    console.print(f"\n  {len(updates) - failed}/{len(updates)} updated")
    if failed:
        raise typer.Exit(1)
