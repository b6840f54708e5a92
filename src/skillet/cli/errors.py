"""skillet rich error messages.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from skillet.cli.errors import err_lock_timeout
    console.print(err_lock_timeout())
    raise typer.Exit(1)
"""

from __future__ import annotations


def _names(names: list[str]) -> str:
    return ", ".join(names) if names else "(none)"


def err_lock_timeout() -> str:
    """Another skillet process holds the manifest lock."""
    return (
        "[red]Error:[/] Another skillet operation is in progress (concurrent operation).\n"
        "  Wait for it to finish, then run the command again."
    )


def err_invalid_target(target: str, available: list[str]) -> str:
    """Unknown --agent value."""
    return (
        f"[red]Error:[/] Invalid agent: '{target}'.\n"
        f"  Available agents: {_names(available)}"
    )


def err_skill_not_found(name: str, available: list[str], source: str) -> str:
    """Requested skill is not in the source."""
    return (
        f"[red]Error:[/] Skill '{name}' not found in {source}.\n"
        f"  Available skills: {_names(available)}"
    )


def err_selection_required(source: str, available: list[str]) -> str:
    """Source has several skills and none was chosen."""
    return (
        f"[red]Error:[/] {source} contains {len(available)} skills.\n"
        f"  Available skills: {_names(available)}\n"
        f"  Run:  skillet install {source} <skill>   or   skillet install {source} --all"
    )


def err_no_skills(detail: str) -> str:
    """Nothing installable was found."""
    return (
        f"[red]Error:[/] {detail}\n"
        "  Run:  skillet repo sync   to refresh sources, then  skillet search <query>"
    )


def err_invalid_source(detail: str) -> str:
    """Source locator, source name or URL cannot be used."""
    return (
        f"[red]Error:[/] {detail}\n"
        "  Supported formats: owner/repo, owner/repo/path/to/skill, "
        "https://host/owner/repo, git@host:owner/repo"
    )


def err_fetch_failed(source: str, detail: str) -> str:
    """git clone / pull failed."""
    return (
        f"[red]Error:[/] Failed to fetch {source}.\n"
        f"  {detail}\n"
        "  Check the URL and your network access. For private repos set GIT_TOKEN."
    )


def err_install_failed(detail: str) -> str:
    """An install step failed and the request was rolled back."""
    return (
        f"[red]Error:[/] Installation failed and was rolled back: {detail}\n"
        "  Check permissions on the agent skill directories and retry."
    )


def err_not_installed(name: str, scope_label: str = "") -> str:
    """Skill to uninstall is not installed."""
    return (
        f"[red]Error:[/] Skill '{name}' is not installed{scope_label}.\n"
        "  Run:  skillet list   to see installed skills."
    )


def err_source_not_found(name: str) -> str:
    """Source name is not configured."""
    return (
        f"[red]Error:[/] Source '{name}' is not configured.\n"
        "  Run:  skillet repo list   to see configured sources."
    )


def err_config_key(detail: str) -> str:
    """Config key is unknown or its value is invalid."""
    return (
        f"[red]Error:[/] {detail}\n"
        "  Run:  skillet config   to see the current settings."
    )


def warn_incompatible(skill: str, target: str, reasons: list[str]) -> str:
    """Skill skipped for one agent."""
    return f"[yellow]⚠[/] Skipped {skill} for {target}: {'; '.join(reasons)}"


def warn_sync_failed(source: str, detail: str) -> str:
    """Source could not be refreshed; cached data (if any) is kept."""
    return (
        f"[yellow]⚠[/] Could not sync {source}: {detail}\n"
        f"  Retry later with:  skillet repo sync {source}"
    )
