"""Signing certificate CLI commands."""

from __future__ import annotations

import click

from mockidp.cli.common import echo_json, get_config, json_option
from mockidp.core.crypto.certs import (
    GENERATORS,
    CertificateError,
    CertificateStore,
    describe_certificate,
    format_for_metadata,
    get_generator,
    is_certificate_valid,
)


@click.group()
def certs() -> None:
    """Manage the SAML signing certificate and key.

    The IdP signs every SAML Response with this key pair. It is generated
    automatically on first start if missing.
    """
    pass


def _store(generator: str | None = None) -> CertificateStore:
    settings = get_config().certificates
    store = CertificateStore.from_settings(settings)
    if generator:
        store.generator = get_generator(generator)
    return store


@certs.command("generate")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing certificate files",
)
@click.option(
    "--generator",
    type=click.Choice(sorted(GENERATORS)),
    default=None,
    help="How to create the key pair (default: from config)",
)
def certs_generate(force: bool, generator: str | None) -> None:
    """Generate a new self-signed signing certificate.

    Subject fields (country, organization, common name, ...) come from the
    ``certificates`` section of config.yaml or MOCKIDP_CERT_* variables.

    Examples:

        # Generate if missing
        mockidp certs generate

        # Replace an existing pair using the openssl binary
        mockidp certs generate --force --generator openssl
    """
    store = _store(generator)

    if not force and (store.cert_path.exists() or store.key_path.exists()):
        raise click.ClickException(
            f"Certificate files already exist in {store.cert_path.parent}. Use --force to overwrite."
        )

    click.echo("Generating signing certificate...")
    click.echo(f"  Common Name: {store.subject.common_name}")
    click.echo(f"  Valid for: {store.days_valid} days")
    click.echo("")

    try:
        credential = store.generate()
    except CertificateError as e:
        raise click.ClickException(str(e)) from None

    info = describe_certificate(credential.certificate_pem)
    click.echo("Certificate generated successfully!")
    click.echo("")
    click.echo("Files created:")
    click.echo(f"  Certificate: {store.cert_path}")
    click.echo(f"  Private key: {store.key_path}")
    click.echo("")
    click.echo("Certificate details:")
    click.echo(f"  Subject: {info.subject}")
    click.echo(f"  Valid until: {info.not_after.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    click.echo(f"  Fingerprint (SHA-256): {info.fingerprint_sha256}")


@certs.command("show")
@json_option
def certs_show(output_json: bool) -> None:
    """Show details of the current signing certificate."""
    store = _store()
    try:
        credential = store.load()
    except CertificateError as e:
        raise click.ClickException(f"{e}. Run 'mockidp certs generate' first.") from None

    info = describe_certificate(credential.certificate_pem)
    valid = is_certificate_valid(credential.certificate_pem)

    if output_json:
        echo_json(
            {
                "path": str(store.cert_path),
                "subject": info.subject,
                "issuer": info.issuer,
                "serial_number": info.serial_number,
                "not_before": info.not_before.isoformat(),
                "not_after": info.not_after.isoformat(),
                "fingerprint_sha256": info.fingerprint_sha256,
                "key_type": info.key_type,
                "key_size": info.key_size,
                "valid": valid,
            }
        )
        return

    click.echo(f"Certificate: {store.cert_path}")
    click.echo(f"  Subject: {info.subject}")
    click.echo(f"  Issuer: {info.issuer}")
    click.echo(f"  Serial: {info.serial_number}")
    click.echo(f"  Valid from: {info.not_before.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    click.echo(f"  Valid until: {info.not_after.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    click.echo(f"  Key: {info.key_type} {info.key_size} bits")
    click.echo(f"  Fingerprint (SHA-256): {info.fingerprint_sha256}")
    click.echo(f"  Status: {'valid' if valid else 'EXPIRED or not yet valid'}")


@certs.command("metadata")
def certs_metadata() -> None:
    """Print the certificate as the base64 blob used in SAML metadata."""
    try:
        credential = _store().load()
        click.echo(format_for_metadata(credential.certificate_pem))
    except CertificateError as e:
        raise click.ClickException(str(e)) from None
