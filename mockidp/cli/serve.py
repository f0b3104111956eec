"""Server CLI commands."""

import click

from mockidp.cli.common import get_config


@click.command()
@click.option(
    "--host",
    "-h",
    default=None,
    help="Host to bind to (default: from config or 127.0.0.1)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (default: from config or 3000)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode",
)
def serve(host: str | None, port: int | None, debug: bool) -> None:
    """Start the mock IdP web server.

    The signing certificate is loaded, or generated if missing, before
    the server starts.

    Examples:

        # Start on the configured host/port
        mockidp serve

        # Start on a custom port
        mockidp serve --port 8080
    """
    from mockidp.app import run_server
    from mockidp.core.crypto.certs import CertificateError

    config = get_config()
    if debug:
        config.server.debug = True

    try:
        run_server(app_config=config, host=host, port=port)
    except CertificateError as e:
        raise click.ClickException(str(e)) from None
