"""Configuration CLI commands."""

from __future__ import annotations

from pathlib import Path

import click
import yaml

from mockidp.cli.common import echo_json, get_config, json_option
from mockidp.core.config import DEFAULT_CONFIG_FILE, get_default_config_yaml


@click.group()
def config() -> None:
    """Manage mockidp configuration."""
    pass


@config.command("show")
@json_option
def config_show(output_json: bool) -> None:
    """Show the effective configuration (secrets redacted)."""
    data = get_config().to_dict()
    if output_json:
        echo_json(data)
    else:
        click.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


@config.command("init")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Where to write the example config",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(output: Path, force: bool) -> None:
    """Write an example config.yaml."""
    if output.exists() and not force:
        raise click.ClickException(f"{output} already exists. Use --force to overwrite.")
    output.write_text(get_default_config_yaml())
    click.echo(f"Configuration written to: {output}")
