"""skillet uninstall: remove a skill from agent directories.

Usage:
  skillet uninstall pdf                 # every agent holding it
  skillet uninstall pdf --agent cursor --yes
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from skillet.cli.common import open_home, resolve_scope
from skillet.cli.errors import err_invalid_target, err_lock_timeout, err_not_installed
from skillet.core.installer import UnknownTargetError
from skillet.core.lock import LockTimeoutError

console = Console()


def uninstall_cmd(
    name: Annotated[str, typer.Argument(help="Skill name.")],
    agent: Annotated[
        list[str] | None,
        typer.Option("--agent", "-a", help="Agent to remove from (repeatable). Default: all."),
    ] = None,
    global_: Annotated[
        bool,
        typer.Option("--global", "-g", help="Remove from the global (home) directories."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove an installed skill."""
    home = open_home()
    scope = resolve_scope(global_, home.config)
    installer = home.installer()

    try:
        held_by = installer.holders(name, scope, list(agent) if agent else None)
    except UnknownTargetError as exc:
        console.print(err_invalid_target(exc.target, exc.available))
        raise typer.Exit(1)

    if not held_by:
        console.print(err_not_installed(name, scope.label))
        raise typer.Exit(1)

    console.print(f"\nUninstall skill: [bold]{name}[/]{scope.label}")
    console.print(f"  Will remove from: {', '.join(held_by)}")
    if not yes:
        if not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    try:
        outcome = installer.uninstall(name, held_by, scope)
    except LockTimeoutError:
        console.print(err_lock_timeout())
        raise typer.Exit(1)

    for target in outcome.removed:
        console.print(f"[green]✓[/] Removed {name} from {target}{scope.label}")
    for target in outcome.cleaned:
        console.print(
            f"[green]✓[/] Removed stale record of {name} for {target}{scope.label} "
            "[dim](content was already missing)[/]"
        )
