"""SAML constants and small helpers shared by the issuer, decoder and metadata."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from xml.dom import minidom

SAML_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
SAMLP_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
MD_NS = "urn:oasis:names:tc:SAML:2.0:metadata"
DSIG_NS = "http://www.w3.org/2000/09/xmldsig#"
XS_NS = "http://www.w3.org/2001/XMLSchema"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

NSMAP = {
    "samlp": SAMLP_NS,
    "saml": SAML_NS,
}

BINDING_HTTP_POST = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"
BINDING_HTTP_REDIRECT = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"

NAMEID_FORMAT_EMAIL = "urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"
ATTRNAME_FORMAT_BASIC = "urn:oasis:names:tc:SAML:2.0:attrname-format:basic"
ATTRNAME_FORMAT_URI = "urn:oasis:names:tc:SAML:2.0:attrname-format:uri"
STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"
CONFIRMATION_BEARER = "urn:oasis:names:tc:SAML:2.0:cm:bearer"
AUTHN_CONTEXT_PPT = "urn:oasis:names:tc:SAML:2.0:ac:classes:PasswordProtectedTransport"

CLAIM_EMAIL = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress"
CLAIM_GIVEN_NAME = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/givenname"
CLAIM_SURNAME = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/surname"
CLAIM_ROLE = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"

# Bytes of entropy behind generated SAML identifiers
ID_ENTROPY_BYTES = 16


def generate_id() -> str:
    """Generate a SAML identifier: ``_`` followed by 32 hex characters.

    The leading underscore keeps the value a valid xs:ID (NCName).
    """
    return f"_{secrets.token_hex(ID_ENTROPY_BYTES)}"


def format_instant(moment: datetime) -> str:
    """Format a datetime as a SAML ``xs:dateTime`` in UTC with millisecond precision."""
    moment = moment.astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_instant(value: str) -> datetime:
    """Parse a SAML ``xs:dateTime`` produced by :func:`format_instant`."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def pretty_print_xml(xml_string: str, indent: str = "  ") -> str:
    """Pretty-print an XML string with proper indentation.

    Args:
        xml_string: Raw XML string.
        indent: Indentation string (default: 2 spaces).

    Returns:
        Formatted XML string, or the input unchanged if it does not parse.
    """
    try:
        dom = minidom.parseString(xml_string.encode("utf-8"))
    except Exception:
        return xml_string

    # Skip the XML declaration and drop blank lines
    lines = dom.toprettyxml(indent=indent).split("\n")[1:]
    return "\n".join(line for line in lines if line.strip())
