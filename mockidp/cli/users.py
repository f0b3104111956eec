"""Directory CLI commands."""

from __future__ import annotations

import click

from mockidp.cli.common import echo_json, get_config, json_option
from mockidp.directory import DirectoryError, build_directory


@click.group()
def users() -> None:
    """Inspect the local user directory."""
    pass


@users.command("list")
@json_option
def users_list(output_json: bool) -> None:
    """List directory users."""
    try:
        directory = build_directory(get_config().users)
    except DirectoryError as e:
        raise click.ClickException(str(e)) from None

    if output_json:
        echo_json([u.to_dict() for u in directory])
        return

    for user in directory:
        click.echo(f"{user.id:>4}  {user.email:<32} {user.display_name:<20} {user.role}")
