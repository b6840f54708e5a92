"""skillet which: show where a skill is installed on disk."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from skillet.cli.common import open_home
from skillet.cli.errors import err_not_installed
from skillet.core.models import Scope

console = Console()


def which_cmd(
    name: Annotated[str, typer.Argument(help="Skill name.")],
) -> None:
    """Show the install locations of a skill for every agent."""
    home = open_home()
    found = False
    for agent in home.agents.values():
        paths = {s.scope: s.path for s in agent.list_installed() if s.name == name}
        if not paths:
            continue
        found = True
        console.print(f"[bold]{agent.display_name}[/]")
        if Scope.PROJECT in paths:
            typer.echo(f"  Project: {paths[Scope.PROJECT]}")
        if Scope.GLOBAL in paths:
            typer.echo(f"  Global:  {paths[Scope.GLOBAL]}")

    if not found:
        console.print(err_not_installed(name))
        raise typer.Exit(1)
