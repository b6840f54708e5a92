"""skillet validate: check SKILL.md files before publishing them."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from skillet.core.fs import SKILL_FILE
from skillet.core.skill import check_skill_file

console = Console()


def _targets(path: Path) -> list[Path]:
    if path.is_file():
        return [path]
    if (path / SKILL_FILE).is_file():
        return [path / SKILL_FILE]
    return sorted(
        entry / SKILL_FILE
        for entry in path.iterdir()
        if entry.is_dir() and (entry / SKILL_FILE).is_file()
    )


def validate_cmd(
    path: Annotated[
        Path,
        typer.Argument(help="A skill directory, a SKILL.md, or a directory of skills."),
    ] = Path("."),
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Also require a license, a matching directory name and short content."),
    ] = False,
) -> None:
    """Validate skill format. Exits 1 if any skill has problems."""
    if not path.exists():
        console.print(f"[red]Error:[/] Path not found: {path}")
        raise typer.Exit(1)
    if not path.is_file() and not path.is_dir():
        console.print(f"[red]Error:[/] Invalid path type: {path}")
        raise typer.Exit(1)

    try:
        targets = _targets(path)
    except OSError as exc:
        console.print(f"[red]Error:[/] Cannot access path: {path} ({exc})")
        raise typer.Exit(1)

    failed = 0
    checked = 0
    for skill_md in targets:
        if skill_md.name != SKILL_FILE:
            console.print(f"[yellow]⚠[/] Skipping non-SKILL.md file: {skill_md}")
            continue
        checked += 1
        problems = check_skill_file(skill_md, strict=strict)
        if problems:
            failed += 1
            console.print(f"[red]✗[/] {skill_md}:")
            for problem in problems:
                console.print(f"  [dim]- {problem}[/]")
        else:
            console.print(f"[green]✓[/] {skill_md}: Valid")

    if not targets:
        console.print(f"[yellow]⚠[/] No skills found in {path}")
    elif checked > 1:
        console.print(f"\n  {checked - failed}/{checked} valid")
    if failed:
        raise typer.Exit(1)
