"""IdP metadata document."""

from __future__ import annotations

from lxml import etree

from mockidp.core.crypto.certs import format_for_metadata
from mockidp.core.saml.utils import (
    BINDING_HTTP_POST,
    BINDING_HTTP_REDIRECT,
    DSIG_NS,
    MD_NS,
    NAMEID_FORMAT_EMAIL,
    SAMLP_NS,
)


def _md(tag: str) -> str:
    return f"{{{MD_NS}}}{tag}"


def _ds(tag: str) -> str:
    return f"{{{DSIG_NS}}}{tag}"


def build_idp_metadata(
    entity_id: str,
    certificate_pem: str,
    login_url: str,
    logout_url: str,
) -> str:
    """Build the ``EntityDescriptor`` a Service Provider imports to trust this IdP.

    Args:
        entity_id: IdP entity ID.
        certificate_pem: Signing certificate, advertised under ``use="signing"``.
        login_url: SingleSignOnService location.
        logout_url: SingleLogoutService location.

    Returns:
        Metadata XML with an XML declaration.
    """
    root = etree.Element(_md("EntityDescriptor"), nsmap={"md": MD_NS, "ds": DSIG_NS}, entityID=entity_id)
    idp = etree.SubElement(
        root,
        _md("IDPSSODescriptor"),
        protocolSupportEnumeration=SAMLP_NS,
        WantAuthnRequestsSigned="false",
    )

    key_descriptor = etree.SubElement(idp, _md("KeyDescriptor"), use="signing")
    key_info = etree.SubElement(key_descriptor, _ds("KeyInfo"))
    x509_data = etree.SubElement(key_info, _ds("X509Data"))
    etree.SubElement(x509_data, _ds("X509Certificate")).text = format_for_metadata(certificate_pem)

    for binding in (BINDING_HTTP_POST, BINDING_HTTP_REDIRECT):
        etree.SubElement(idp, _md("SingleLogoutService"), Binding=binding, Location=logout_url)

    etree.SubElement(idp, _md("NameIDFormat")).text = NAMEID_FORMAT_EMAIL

    for binding in (BINDING_HTTP_POST, BINDING_HTTP_REDIRECT):
        etree.SubElement(idp, _md("SingleSignOnService"), Binding=binding, Location=login_url)

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode(
        "utf-8"
    )
