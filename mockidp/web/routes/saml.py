"""SAML IdP routes: metadata and login."""

from __future__ import annotations

import logging
from pathlib import Path

from flask import Blueprint, Response, render_template, request

from mockidp.core.crypto.certs import CertificateError
from mockidp.core.saml.decoder import correlate
from mockidp.core.saml.issuer import SAMLError
from mockidp.core.saml.metadata import build_idp_metadata
from mockidp.web.routes import get_services

logger = logging.getLogger(__name__)

# Get the directories relative to this package
_web_dir = Path(__file__).parent.parent
_templates_dir = _web_dir / "templates"

saml_bp = Blueprint(
    "saml",
    __name__,
    template_folder=str(_templates_dir),
    url_prefix="/saml",
)


def _form_value(*names: str) -> str:
    """First non-empty form or query value among ``names``."""
    for name in names:
        value = request.values.get(name)
        if value:
            return value
    return ""


@saml_bp.route("/metadata")
def metadata() -> Response | tuple[str, int]:
    """IdP metadata for the Service Provider to import."""
    services = get_services()
    saml = services.config.saml
    try:
        credential = services.credentials.credential
    except CertificateError as e:
        logger.error(f"Cannot serve metadata: {e}")
        return "Signing certificate unavailable", 500

    xml = build_idp_metadata(
        entity_id=saml.idp_entity_id,
        certificate_pem=credential.certificate_pem,
        login_url=saml.effective_login_url,
        logout_url=saml.effective_logout_url,
    )
    return Response(xml, mimetype="text/xml")


@saml_bp.route("/login", methods=["GET", "POST"])
def login() -> str | Response | tuple[str, int] | tuple[dict[str, str], int]:
    """Show the login form, or answer it with a signed SAML Response.

    The form carries the inbound ``SAMLRequest`` and ``RelayState``
    through unchanged. A POST without an email (an SP using the HTTP-POST
    binding) just shows the form.
    """
    saml_request = _form_value("SAMLRequest", "samlRequest")
    relay_state = _form_value("RelayState", "relayState")
    email = request.form.get("email", "").strip() if request.method == "POST" else ""

    services = get_services()
    if not email:
        return render_template(
            "login.html",
            saml_request=saml_request,
            relay_state=relay_state,
            users=services.directory.all(),
        )

    user = services.directory.find_by_email(email)
    if user is None:
        logger.info(f"Login rejected for unknown user {email}")
        return {"error": "User not found"}, 401

    saml = services.config.saml
    acs_url = saml.acs_url
    correlation = correlate(saml_request or None, acs_url)

    try:
        signed = services.issuer.issue(
            user,
            acs_url,
            correlation,
            services.credentials.credential,
            relay_state=relay_state or saml.default_relay_state,
        )
    except (SAMLError, CertificateError) as e:
        logger.error(f"Error generating SAML response for {email}: {e}")
        return "Error processing SAML login", 500

    return render_template(
        "saml_response.html",
        acs_url=acs_url,
        saml_response=signed.encode(),
        relay_state=signed.relay_state,
    )


@saml_bp.route("/logout", methods=["GET", "POST"])
def logout() -> str:
    """Single Logout endpoint advertised in metadata. No sessions are kept."""
    return render_template("home.html", base_url="", logged_out=True)
