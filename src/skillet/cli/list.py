"""skillet list: show installed skills from the manifest."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from skillet.cli.common import open_home
from skillet.cli.errors import err_invalid_target
from skillet.core.models import Scope

console = Console()


def list_cmd(
    agent: Annotated[
        str | None,
        typer.Option("--agent", "-a", help="Only show skills installed for this agent."),
    ] = None,
    global_: Annotated[
        bool,
        typer.Option("--global", "-g", help="Only show globally installed skills."),
    ] = False,
) -> None:
    """List installed skills."""
    home = open_home()
    if agent is not None and agent not in home.agents:
        console.print(err_invalid_target(agent, list(home.agents)))
        raise typer.Exit(1)

    records = home.manifest.all_by_target(agent) if agent else home.manifest.all()
    if global_:
        records = [r for r in records if r.scope is Scope.GLOBAL]

    if not records:
        console.print("[yellow]No skills installed.[/]\n  Run:  skillet install <source>")
        raise typer.Exit(0)

    table = Table(title="Installed Skills", show_header=True, header_style="bold")
    table.add_column("Skill", style="bold")
    table.add_column("Agent")
    table.add_column("Scope")
    table.add_column("Source")
    table.add_column("Revision")
    table.add_column("Installed")

    missing = 0
    for record in sorted(records, key=lambda r: (r.name, r.target, r.scope.value)):
        target = home.agents.get(record.target)
        present = target is not None and target.has_skill(record.name, record.scope)
        if not present:
            missing += 1
        table.add_row(
            record.name if present else f"{record.name} [red](missing)[/]",
            record.target,
            record.scope.value,
            record.source_label,
            record.revision[:7],
            record.installed_at[:10],
        )

    console.print(table)
    console.print(f"\n  {len(records)} installed")
    if missing:
        console.print(
            f"  [yellow]⚠[/] {missing} recorded skill(s) missing on disk. "
            "Reinstall or run  skillet uninstall <name>"
        )
