"""Tests for SAMLRequest decoding and correlation."""

import base64
import logging
import re
import zlib

import pytest

from mockidp.core.saml.decoder import (
    AuthnCorrelation,
    correlate,
    decode_request,
    extract_correlation,
)

AUTHN_REQUEST = (
    '<samlp:AuthnRequest xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" '
    'xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" '
    'ID="_abc123" Version="2.0" IssueInstant="2024-01-01T00:00:00Z" '
    'AssertionConsumerServiceURL="https://sp.example.test/acs">'
    "<saml:Issuer>urn:test:sp</saml:Issuer>"
    "</samlp:AuthnRequest>"
)

ACS = "https://sp.example.test/acs"
SYNTHESIZED_ID = re.compile(r"^_[0-9a-f]{32}$")


def redirect_encode(xml: str) -> str:
    """HTTP-Redirect binding: raw deflate, then base64."""
    return base64.b64encode(zlib.compress(xml.encode("utf-8"))[2:-4]).decode("ascii")


def post_encode(xml: str) -> str:
    """HTTP-POST binding: base64 only."""
    return base64.b64encode(xml.encode("utf-8")).decode("ascii")


class TestDecodeRequest:
    """Tests for decode_request."""

    def test_deflated_request(self):
        assert decode_request(redirect_encode(AUTHN_REQUEST)) == AUTHN_REQUEST

    def test_plain_base64_request(self):
        assert decode_request(post_encode(AUTHN_REQUEST)) == AUTHN_REQUEST

    def test_url_safe_unpadded_request(self):
        raw = base64.urlsafe_b64encode(zlib.compress(AUTHN_REQUEST.encode())[2:-4]).decode()
        assert decode_request(raw.rstrip("=")) == AUTHN_REQUEST

    def test_wrapped_base64_request(self):
        encoded = post_encode(AUTHN_REQUEST)
        wrapped = "\n".join(encoded[i : i + 76] for i in range(0, len(encoded), 76))
        assert decode_request(wrapped) == AUTHN_REQUEST

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_input(self, raw):
        assert decode_request(raw) == ""

    def test_invalid_base64(self, caplog):
        caplog.set_level(logging.WARNING, logger="mockidp")

        assert decode_request("!!! not base64 !!!") == ""
        assert "Could not decode SAMLRequest" in caplog.text

    def test_binary_payload(self):
        raw = base64.b64encode(b"\xff\xfe\x00\x01binary").decode()
        assert decode_request(raw) == ""

    def test_non_xml_text(self):
        assert decode_request(post_encode("just some words")) == ""


class TestExtractCorrelation:
    """Tests for extract_correlation."""

    def test_request_id_and_issuer(self):
        correlation = extract_correlation(AUTHN_REQUEST, ACS)

        assert correlation.request_id == "_abc123"
        assert correlation.issuer == "urn:test:sp"
        assert correlation.destination == ACS
        assert not correlation.synthesized

    def test_single_quoted_id_and_unprefixed_issuer(self):
        xml = "<AuthnRequest ID='_single' Version='2.0'><Issuer> sp-entity </Issuer></AuthnRequest>"

        correlation = extract_correlation(xml, ACS)

        assert correlation.request_id == "_single"
        assert correlation.issuer == "sp-entity"

    def test_id_attribute_not_confused_with_other_names(self):
        xml = '<AuthnRequest RequestID="wrong" ID="_right"/>'
        assert extract_correlation(xml, ACS).request_id == "_right"

    def test_missing_id_is_synthesized(self):
        xml = "<samlp:AuthnRequest><saml:Issuer>urn:test:sp</saml:Issuer></samlp:AuthnRequest>"

        correlation = extract_correlation(xml, ACS)

        assert correlation.synthesized
        assert SYNTHESIZED_ID.match(correlation.request_id)
        assert correlation.issuer == "urn:test:sp"

    def test_empty_id_is_synthesized(self):
        correlation = extract_correlation('<AuthnRequest ID=""/>', ACS)
        assert correlation.synthesized
        assert correlation.request_id

    def test_synthesized_ids_are_unique(self):
        ids = {extract_correlation("", ACS).request_id for _ in range(50)}
        assert len(ids) == 50


class TestCorrelate:
    """Tests for correlate."""

    def test_deflated_request(self):
        correlation = correlate(redirect_encode(AUTHN_REQUEST), ACS)
        assert correlation.request_id == "_abc123"
        assert not correlation.synthesized

    def test_no_request_is_unsolicited(self):
        correlation = correlate(None, ACS)

        assert correlation.synthesized
        assert correlation.issuer is None
        assert correlation.destination == ACS

    def test_garbage_request_does_not_raise(self):
        correlation = correlate("%%%garbage%%%", ACS)
        assert correlation.synthesized

    def test_unsolicited_issue_instant_is_utc(self):
        correlation = AuthnCorrelation.unsolicited(ACS)
        assert correlation.issue_instant.endswith("Z")
