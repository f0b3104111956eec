"""Signature verification for issued SAML Responses.

Checks each enveloped signature (Response level and Assertion level)
against the IdP certificate. Used by ``saml issue --verify`` and by the
test suite to prove a response is verifiable by a relying party.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from lxml import etree
from signxml import XMLVerifier
from signxml.exceptions import InvalidInput, InvalidSignature

from mockidp.core.crypto.certs import CertificateInvalidError, normalize_certificate_pem
from mockidp.core.saml.utils import DSIG_NS, SAML_NS


class SignatureLocation(StrEnum):
    """Where a signature was found in the SAML document."""

    RESPONSE = "response"
    ASSERTION = "assertion"


class SignatureStatus(StrEnum):
    """Result of signature validation."""

    VALID = "valid"
    INVALID = "invalid"
    MISSING = "missing"
    ERROR = "error"


# Mapping of signature algorithm URIs to friendly names
SIGNATURE_ALGORITHMS: dict[str, str] = {
    "http://www.w3.org/2000/09/xmldsig#rsa-sha1": "RSA-SHA1",
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256": "RSA-SHA256",
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha384": "RSA-SHA384",
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512": "RSA-SHA512",
}

DIGEST_ALGORITHMS: dict[str, str] = {
    "http://www.w3.org/2000/09/xmldsig#sha1": "SHA-1",
    "http://www.w3.org/2001/04/xmlenc#sha256": "SHA-256",
    "http://www.w3.org/2001/04/xmldsig-more#sha384": "SHA-384",
    "http://www.w3.org/2001/04/xmlenc#sha512": "SHA-512",
}


@dataclass
class SignatureInfo:
    """Information about one signature in the document."""

    location: SignatureLocation
    reference_uri: str | None = None
    signature_algorithm_name: str | None = None
    digest_algorithm_name: str | None = None
    certificate_embedded: bool = False
    verified: bool = False


@dataclass
class SignatureValidationResult:
    """Result of SAML signature validation."""

    status: SignatureStatus
    message: str
    signatures: list[SignatureInfo] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.status == SignatureStatus.VALID

    def add_trace(self, message: str) -> None:
        self.trace.append(message)


def _find_signed_elements(doc: etree._Element) -> list[tuple[etree._Element, SignatureLocation]]:
    """Find elements carrying an enveloped signature as a direct child."""
    signed: list[tuple[etree._Element, SignatureLocation]] = []

    if doc.find(f"{{{DSIG_NS}}}Signature") is not None:
        location = (
            SignatureLocation.ASSERTION
            if doc.tag == f"{{{SAML_NS}}}Assertion"
            else SignatureLocation.RESPONSE
        )
        signed.append((doc, location))

    for assertion in doc.iterfind(f".//{{{SAML_NS}}}Assertion"):
        if assertion.find(f"{{{DSIG_NS}}}Signature") is not None:
            signed.append((assertion, SignatureLocation.ASSERTION))

    return signed


def _describe(element: etree._Element, location: SignatureLocation) -> SignatureInfo:
    info = SignatureInfo(location=location)
    sig = element.find(f"{{{DSIG_NS}}}Signature")

    method = sig.find(f"{{{DSIG_NS}}}SignedInfo/{{{DSIG_NS}}}SignatureMethod")
    if method is not None:
        algo = method.get("Algorithm") or ""
        info.signature_algorithm_name = SIGNATURE_ALGORITHMS.get(algo, algo)

    reference = sig.find(f"{{{DSIG_NS}}}SignedInfo/{{{DSIG_NS}}}Reference")
    if reference is not None:
        info.reference_uri = reference.get("URI")
        digest = reference.find(f"{{{DSIG_NS}}}DigestMethod")
        if digest is not None:
            algo = digest.get("Algorithm") or ""
            info.digest_algorithm_name = DIGEST_ALGORITHMS.get(algo, algo)

    cert = sig.find(f".//{{{DSIG_NS}}}X509Certificate")
    info.certificate_embedded = cert is not None and bool((cert.text or "").strip())
    return info


def verify_response(xml_string: str, certificate_pem: str) -> SignatureValidationResult:
    """Verify every signature in a SAML Response against a certificate.

    Each signed element is serialized on its own and verified, so a
    Response-level and an Assertion-level signature are both checked.

    Args:
        xml_string: The SAML Response XML.
        certificate_pem: Expected signing certificate (PEM or bare base64).

    Returns:
        SignatureValidationResult with status and a trace of each step.
    """
    result = SignatureValidationResult(status=SignatureStatus.ERROR, message="Validation not completed")

    try:
        doc = etree.fromstring(xml_string.encode("utf-8"))
    except etree.XMLSyntaxError as e:
        result.message = f"Failed to parse XML: {e}"
        result.add_trace(f"XML parsing error: {e}")
        return result
    result.add_trace("Parsed XML document")

    signed = _find_signed_elements(doc)
    if not signed:
        result.status = SignatureStatus.MISSING
        result.message = "No signature found in SAML Response or Assertion"
        return result

    try:
        cert_pem = normalize_certificate_pem(certificate_pem)
    except CertificateInvalidError as e:
        result.message = f"Failed to prepare certificate: {e}"
        return result

    verifier = XMLVerifier()
    for element, location in signed:
        info = _describe(element, location)
        result.signatures.append(info)
        result.add_trace(
            f"Signature at {location.value}: Algorithm={info.signature_algorithm_name}, "
            f"Digest={info.digest_algorithm_name}, Reference={info.reference_uri}"
        )
        try:
            verifier.verify(etree.tostring(element), x509_cert=cert_pem)
        except InvalidSignature as e:
            result.status = SignatureStatus.INVALID
            result.message = f"Signature at {location.value} is invalid: {e}"
            result.add_trace(result.message)
            return result
        except (InvalidInput, ValueError) as e:
            result.status = SignatureStatus.ERROR
            result.message = f"Signature at {location.value} could not be checked: {e}"
            result.add_trace(result.message)
            return result
        except Exception as e:
            result.status = SignatureStatus.ERROR
            result.message = f"Unexpected error verifying signature at {location.value}: {e}"
            result.add_trace(result.message)
            return result
        info.verified = True
        result.add_trace(f"Signature at {location.value} verified")

    result.status = SignatureStatus.VALID
    result.message = f"{len(signed)} signature(s) validated against the IdP certificate"
    return result


def get_signature_summary(result: SignatureValidationResult) -> str:
    """Get a human-readable summary of signature validation."""
    status_icons = {
        SignatureStatus.VALID: "[VALID]",
        SignatureStatus.INVALID: "[INVALID]",
        SignatureStatus.MISSING: "[MISSING]",
        SignatureStatus.ERROR: "[ERROR]",
    }
    lines = [f"{status_icons[result.status]} {result.message}"]

    for i, sig in enumerate(result.signatures, 1):
        lines.append(f"  Signature {i} ({sig.location.value}):")
        lines.append(f"    Algorithm: {sig.signature_algorithm_name or 'Unknown'}")
        lines.append(f"    Digest: {sig.digest_algorithm_name or 'Unknown'}")
        if sig.certificate_embedded:
            lines.append("    Certificate: Embedded in signature")

    return "\n".join(lines)
