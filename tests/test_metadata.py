"""Tests for the IdP metadata document."""

from lxml import etree

from mockidp.core.crypto.certs import format_for_metadata
from mockidp.core.saml.metadata import build_idp_metadata
from mockidp.core.saml.utils import (
    BINDING_HTTP_POST,
    BINDING_HTTP_REDIRECT,
    DSIG_NS,
    MD_NS,
    NAMEID_FORMAT_EMAIL,
)

NS = {"md": MD_NS, "ds": DSIG_NS}


def build(credential) -> etree._Element:
    xml = build_idp_metadata(
        entity_id="urn:test:idp",
        certificate_pem=credential.certificate_pem,
        login_url="http://localhost:3000/saml/login",
        logout_url="http://localhost:3000/saml/logout",
    )
    assert xml.startswith("<?xml")
    return etree.fromstring(xml.encode("utf-8"))


def test_entity_descriptor(signing_credential):
    root = build(signing_credential)

    assert root.tag == f"{{{MD_NS}}}EntityDescriptor"
    assert root.get("entityID") == "urn:test:idp"
    idp = root.find("md:IDPSSODescriptor", NS)
    assert idp.get("WantAuthnRequestsSigned") == "false"


def test_signing_certificate(signing_credential):
    root = build(signing_credential)

    key_descriptor = root.find(".//md:KeyDescriptor", NS)
    assert key_descriptor.get("use") == "signing"
    certificate = key_descriptor.findtext(".//ds:X509Certificate", namespaces=NS)
    assert certificate == format_for_metadata(signing_credential.certificate_pem)
    assert "\n" not in certificate


def test_endpoints(signing_credential):
    root = build(signing_credential)

    sso = {e.get("Binding"): e.get("Location") for e in root.iterfind(".//md:SingleSignOnService", NS)}
    slo = {e.get("Binding"): e.get("Location") for e in root.iterfind(".//md:SingleLogoutService", NS)}
    assert sso == {
        BINDING_HTTP_POST: "http://localhost:3000/saml/login",
        BINDING_HTTP_REDIRECT: "http://localhost:3000/saml/login",
    }
    assert set(slo.values()) == {"http://localhost:3000/saml/logout"}
    assert root.findtext(".//md:NameIDFormat", namespaces=NS) == NAMEID_FORMAT_EMAIL
