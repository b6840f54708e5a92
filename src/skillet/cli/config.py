"""skillet config CLI commands.

Commands:
  skillet config                    show the effective configuration
  skillet config get <key>          print one value (dotted key)
  skillet config set <key> <value>  change defaultTarget, defaultScope or a target path
  skillet config path               print the config file location
"""

from __future__ import annotations

from typing import Annotated, Any

import typer
import yaml
from rich.console import Console

from skillet.agents import agent_names
from skillet.cli.common import open_home
from skillet.cli.errors import err_config_key
from skillet.config import ConfigError, config_path, get_config_value, set_config_value, skillet_home

console = Console()

config_app = typer.Typer(
    name="config",
    help="Show and change skillet settings (get, set, path).",
    add_completion=False,
)


def _echo_value(value: Any) -> None:
    if isinstance(value, (dict, list)):
        typer.echo(yaml.safe_dump(value, sort_keys=False).rstrip())
    else:
        typer.echo(value)


@config_app.callback(invoke_without_command=True)
def config_show_cmd(ctx: typer.Context) -> None:
    """Show the effective configuration, environment overrides included."""
    if ctx.invoked_subcommand is not None:
        return
    home = open_home()
    console.print(f"[dim]# {config_path(home.path)}[/]")
    _echo_value(home.config.to_dict())


@config_app.command("get")
def config_get_cmd(
    key: Annotated[str, typer.Argument(help="Dotted key, e.g. defaultScope or targetOverrides.cursor.")],
) -> None:
    """Print one configuration value."""
    home = open_home()
    try:
        value = get_config_value(home.config, key)
    except ConfigError as exc:
        console.print(err_config_key(str(exc)))
        raise typer.Exit(1)
    _echo_value(value)


@config_app.command("set")
def config_set_cmd(
    key: Annotated[str, typer.Argument(help="defaultTarget, defaultScope or targetOverrides.<agent>.skillPath.")],
    value: Annotated[str, typer.Argument(help="New value.")],
) -> None:
    """Change one configuration value and save it to config.yaml."""
    try:
        set_config_value(key, value, agent_names(), skillet_home())
    except ConfigError as exc:
        console.print(err_config_key(str(exc)))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Set {key} = {value}")


@config_app.command("path")
def config_path_cmd() -> None:
    """Print the path of config.yaml."""
    typer.echo(config_path())
