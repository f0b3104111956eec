"""SAML CLI commands."""

from __future__ import annotations

import click

from mockidp.app import build_issuer
from mockidp.cli.common import echo_json, get_config, json_option
from mockidp.core.crypto.certs import CertificateError, CertificateStore
from mockidp.core.saml.decoder import correlate, decode_request, extract_correlation
from mockidp.core.saml.issuer import SAMLError
from mockidp.core.saml.metadata import build_idp_metadata
from mockidp.core.saml.signature import get_signature_summary, verify_response
from mockidp.core.saml.utils import pretty_print_xml
from mockidp.directory import build_directory


@click.group()
def saml() -> None:
    """Issue and inspect SAML documents without running the server."""
    pass


def _credential():
    try:
        return CertificateStore.from_settings(get_config().certificates).ensure()
    except CertificateError as e:
        raise click.ClickException(str(e)) from None


@saml.command("metadata")
def saml_metadata() -> None:
    """Print the IdP metadata XML (generates the certificate if missing)."""
    settings = get_config().saml
    credential = _credential()
    click.echo(
        build_idp_metadata(
            entity_id=settings.idp_entity_id,
            certificate_pem=credential.certificate_pem,
            login_url=settings.effective_login_url,
            logout_url=settings.effective_logout_url,
        ),
        nl=False,
    )


@saml.command("issue")
@click.option("--email", "-e", required=True, help="Email of the directory user to log in")
@click.option("--request", "-r", "saml_request", default=None, help="SAMLRequest being answered")
@click.option("--acs-url", default=None, help="Override the configured ACS URL")
@click.option("--relay-state", default=None, help="RelayState to return with the response")
@click.option("--encoded", is_flag=True, help="Print the base64 SAMLResponse form value")
@click.option("--pretty", is_flag=True, help="Pretty-print the XML")
@click.option("--verify", is_flag=True, help="Verify the signatures after issuing")
def saml_issue(
    email: str,
    saml_request: str | None,
    acs_url: str | None,
    relay_state: str | None,
    encoded: bool,
    pretty: bool,
    verify: bool,
) -> None:
    """Issue a signed SAML Response for a directory user.

    Without --request the response is unsolicited (IdP-initiated) and
    carries no InResponseTo.

    Examples:

        mockidp saml issue --email darwin+idp1@datasaur.ai --pretty --verify
    """
    app_config = get_config()
    user = build_directory(app_config.users).find_by_email(email)
    if user is None:
        raise click.ClickException(f"User not found: {email}")

    acs_url = acs_url or app_config.saml.acs_url
    credential = _credential()
    correlation = correlate(saml_request, acs_url)

    try:
        signed = build_issuer(app_config).issue(
            user, acs_url, correlation, credential, relay_state=relay_state
        )
    except SAMLError as e:
        raise click.ClickException(str(e)) from None

    if encoded:
        click.echo(signed.encode())
    elif pretty:
        click.echo(pretty_print_xml(signed.xml_document))
    else:
        click.echo(signed.xml_document)

    if verify:
        result = verify_response(signed.xml_document, credential.certificate_pem)
        click.echo(get_signature_summary(result), err=True)
        if not result.is_valid:
            raise SystemExit(1)


@saml.command("decode")
@click.argument("saml_request")
@click.option("--destination", default="", help="ACS URL recorded in the correlation")
@json_option
def saml_decode(saml_request: str, destination: str, output_json: bool) -> None:
    """Decode a SAMLRequest and show the fields used to answer it."""
    xml_text = decode_request(saml_request)
    if not xml_text:
        raise click.ClickException("Could not decode SAMLRequest")

    correlation = extract_correlation(xml_text, destination)
    if output_json:
        echo_json(
            {
                "request_id": correlation.request_id,
                "issuer": correlation.issuer,
                "synthesized": correlation.synthesized,
                "xml": xml_text,
            }
        )
        return

    click.echo(f"Request ID: {correlation.request_id}" + (" (synthesized)" if correlation.synthesized else ""))
    click.echo(f"Issuer: {correlation.issuer or '-'}")
    click.echo("")
    click.echo(pretty_print_xml(xml_text))
