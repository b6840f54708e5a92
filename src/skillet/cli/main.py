"""skillet CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from skillet.cli.config import config_app
from skillet.cli.install import install_cmd
from skillet.cli.list import list_cmd
from skillet.cli.repo import repo_app
from skillet.cli.search import search_cmd
from skillet.cli.uninstall import uninstall_cmd
from skillet.cli.update import update_cmd
from skillet.cli.validate import validate_cmd
from skillet.cli.which import which_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("skillet")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"skillet {_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route skillet's library logging through rich on stderr."""
    logger = logging.getLogger("skillet")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


app = typer.Typer(
    name="skillet",
    help=(
        "skillet: install agent skills from git sources.\n\n"
        "  skillet install   Install skills into agent directories.\n"
        "  skillet repo      Manage the sources skills are installed from.\n"
        "  skillet validate  Check SKILL.md files before publishing."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """skillet: install agent skills from git sources."""
    _configure_logging(verbose)


app.command("install")(install_cmd)
app.command("uninstall")(uninstall_cmd)
app.command("list")(list_cmd)
app.command("search")(search_cmd)
app.command("update")(update_cmd)
app.command("which")(which_cmd)
app.command("validate")(validate_cmd)
app.add_typer(repo_app, name="repo")
app.add_typer(config_app, name="config")


@app.command("version")
def version_cmd() -> None:
    """Show the installed skillet version."""
    typer.echo(f"skillet {_version()}")


if __name__ == "__main__":
    app()
