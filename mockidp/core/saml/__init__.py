"""SAML request decoding, response issuance and metadata."""

from mockidp.core.saml.decoder import (
    AuthnCorrelation,
    DecodeFailed,
    correlate,
    decode_request,
    extract_correlation,
)
from mockidp.core.saml.issuer import (
    AssertionFields,
    AssertionIssuer,
    SAMLError,
    SignedAssertion,
    SigningFailed,
    TemplateError,
)
from mockidp.core.saml.metadata import build_idp_metadata
from mockidp.core.saml.signature import (
    SignatureStatus,
    SignatureValidationResult,
    get_signature_summary,
    verify_response,
)

__all__ = [
    # Decoder
    "AuthnCorrelation",
    "DecodeFailed",
    "correlate",
    "decode_request",
    "extract_correlation",
    # Issuer
    "AssertionFields",
    "AssertionIssuer",
    "SAMLError",
    "SignedAssertion",
    "SigningFailed",
    "TemplateError",
    # Metadata
    "build_idp_metadata",
    # Signature
    "SignatureStatus",
    "SignatureValidationResult",
    "get_signature_summary",
    "verify_response",
]
