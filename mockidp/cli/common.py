"""Helpers shared by the CLI commands."""

from __future__ import annotations

import json
from typing import Any

import click

from mockidp.core.config import AppConfig, ConfigError, load_config
from mockidp.core.logging import configure_logging

# Common option for JSON output
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON for scripting",
)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def get_config(ctx: click.Context | None = None) -> AppConfig:
    """Load configuration once per invocation and set up logging from it.

    Honours the root ``--config`` and ``--log-level`` options.
    """
    ctx = ctx or click.get_current_context()
    obj = ctx.find_root().ensure_object(dict)
    if "app_config" in obj:
        return obj["app_config"]

    try:
        app_config = load_config(obj.get("config_path"))
    except ConfigError as e:
        raise click.ClickException(str(e)) from None

    if obj.get("log_level"):
        app_config.logging.level = obj["log_level"].upper()
    configure_logging(
        level=app_config.logging.level,
        trace_enabled=app_config.logging.trace_enabled,
        log_file=app_config.logging.log_file,
    )

    obj["app_config"] = app_config
    return app_config
