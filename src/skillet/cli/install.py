"""skillet install: install skills from a source into one or more agents.

Usage:
  skillet install anthropics/skills pdf
  skillet install anthropics/skills --all --agent claude --agent cursor
  skillet install owner/repo/skills/my-skill --global
  skillet install pdf                         # search configured sources by name
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from skillet.cli.common import open_home, resolve_scope
from skillet.cli.errors import (
    err_fetch_failed,
    err_install_failed,
    err_invalid_source,
    err_invalid_target,
    err_lock_timeout,
    err_no_skills,
    err_selection_required,
    err_skill_not_found,
    warn_incompatible,
)
from skillet.core.git import FetchError
from skillet.core.installer import (
    InstallError,
    InstallOutcome,
    InstallRequest,
    InvalidSourceError,
    NoSkillsFoundError,
    SelectionRequiredError,
    SkillNotFoundError,
    UnknownTargetError,
)
from skillet.core.lock import LockTimeoutError

console = Console()


def install_cmd(
    source: Annotated[
        str,
        typer.Argument(help="owner/repo[/path], git URL, configured source name, or a skill name."),
    ],
    skills: Annotated[
        list[str] | None,
        typer.Argument(help="Skill name(s) to install from the source."),
    ] = None,
    agent: Annotated[
        list[str] | None,
        typer.Option("--agent", "-a", help="Target agent (repeatable). Default: config defaultTarget."),
    ] = None,
    global_: Annotated[
        bool,
        typer.Option("--global", "-g", help="Install into the agent's global (home) directory."),
    ] = False,
    all_: Annotated[
        bool,
        typer.Option("--all", help="Install every skill in the source."),
    ] = False,
) -> None:
    """Install skills into agent directories."""
    home = open_home()
    scope = resolve_scope(global_, home.config)
    targets = list(agent or [])

    def _progress(index: int, total: int, skill: str, target: str) -> None:
        console.print(f"[dim][{index}/{total}][/] Installing {skill} → {target}{scope.label}")

    installer = home.installer(on_progress=_progress)
    by_name = (
        home.config.get_source(source) is None
        and "/" not in source
        and ":" not in source
    )

    try:
        if by_name:
            outcome = installer.install_by_name(source, targets, scope)
        else:
            outcome = installer.install(
                InstallRequest(
                    source=source,
                    targets=targets,
                    scope=scope,
                    skill_name=skills[0] if skills and len(skills) == 1 else None,
                    install_all=all_,
                    selection=skills if skills and len(skills) > 1 else None,
                )
            )
    except (InstallError, FetchError, LockTimeoutError, OSError, ValueError) as exc:
        console.print(describe_install_error(exc, source))
        raise typer.Exit(1)

    _print_outcome(outcome)
    if not outcome.installed:
        raise typer.Exit(1)


def describe_install_error(exc: Exception, source: str) -> str:
    """Map an install failure to its user-facing message."""
    if isinstance(exc, LockTimeoutError):
        return err_lock_timeout()
    if isinstance(exc, UnknownTargetError):
        return err_invalid_target(exc.target, exc.available)
    if isinstance(exc, SkillNotFoundError):
        return err_skill_not_found(exc.name, exc.available, source)
    if isinstance(exc, SelectionRequiredError):
        return err_selection_required(source, exc.available)
    if isinstance(exc, NoSkillsFoundError):
        return err_no_skills(str(exc))
    if isinstance(exc, InvalidSourceError):
        return err_invalid_source(str(exc))
    if isinstance(exc, FetchError):
        return err_fetch_failed(source, str(exc))
    return err_install_failed(str(exc))


def _print_outcome(outcome: InstallOutcome) -> None:
    for skipped in outcome.skipped:
        console.print(warn_incompatible(skipped.skill, skipped.target, skipped.reasons))
    for skill, target in outcome.installed:
        console.print(f"[green]✓[/] {skill} → {target}{outcome.scope.label}")

    source = f"{outcome.source_owner}/{outcome.source_name}"
    console.print(
        f"\n  Installed {len(outcome.installed)} of {outcome.total} from {source}"
        f" [dim]({outcome.revision[:7]})[/]"
    )
