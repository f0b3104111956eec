"""SCIM sync CLI command."""

from __future__ import annotations

import sys

import click

from mockidp.cli.common import echo_json, get_config, json_option
from mockidp.directory import DirectoryError, build_directory
from mockidp.scim.reconcile import DirectoryReconciler


@click.command()
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Users to sync concurrently (default: from config)",
)
@json_option
def sync(workers: int | None, output_json: bool) -> None:
    """Push the local directory to the remote SCIM service.

    Each user is created, or updated if the remote reports it already
    exists. Exits with status 1 if any user failed.
    """
    app_config = get_config()
    settings = app_config.scim
    if not settings.api_key:
        raise click.ClickException("SCIM API key is not set (scim.api_key or MOCKIDP_SCIM_API_KEY)")
    if workers:
        settings.max_workers = workers

    try:
        directory = build_directory(app_config.users)
    except DirectoryError as e:
        raise click.ClickException(str(e)) from None

    if not output_json:
        click.echo(f"Synchronizing {len(directory)} users with {settings.base_url}...")

    reconciler = DirectoryReconciler.from_settings(settings)
    try:
        report = reconciler.reconcile(directory.all())
    finally:
        reconciler.close()

    if output_json:
        echo_json(report.to_dict())
    else:
        click.echo("")
        click.echo("Synchronization complete!")
        click.echo(f"  {report.success} users synchronized successfully")
        if report.failed:
            click.echo(f"  {report.failed} users failed to synchronize")
            click.echo("")
            click.echo("Failures:")
            for failure in report.failures:
                click.echo(f"  - {failure}")

    if report.failed:
        sys.exit(1)
