"""CLI entry point for mockidp."""

from pathlib import Path

import click

from mockidp import __version__
from mockidp.cli import certs as certs_commands
from mockidp.cli import config as config_commands
from mockidp.cli import saml as saml_commands
from mockidp.cli import serve as serve_commands
from mockidp.cli import sync as sync_commands
from mockidp.cli import users as users_commands


@click.group()
@click.version_option(version=__version__, prog_name="mockidp")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=None,
    help="Path to config.yaml (default: ./config.yaml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["ERROR", "INFO", "DEBUG", "TRACE"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """mockidp - Mock SAML Identity Provider with SCIM directory sync."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


cli.add_command(certs_commands.certs)
cli.add_command(saml_commands.saml)
cli.add_command(users_commands.users)
cli.add_command(sync_commands.sync)
cli.add_command(serve_commands.serve)
cli.add_command(config_commands.config)
