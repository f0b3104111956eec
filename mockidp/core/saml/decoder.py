"""Inbound AuthnRequest decoding and correlation.

Only the request ``ID`` and ``Issuer`` are needed to answer a login, so
they are pulled out with a pattern match rather than a full XML parse.
Malformed input never raises: it degrades to a synthesized correlation so
the login can still be answered (the same path IdP-initiated logins take).
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import zlib
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from mockidp.core.saml.utils import format_instant, generate_id

logger = logging.getLogger(__name__)

# Root element ID attribute; the first ID="..." in the document
_ID_RE = re.compile(r"""\bID\s*=\s*(?:"([^"]*)"|'([^']*)')""")

# Issuer element with any (or no) namespace prefix
_ISSUER_RE = re.compile(
    r"<(?:[\w.-]+:)?Issuer\b[^>]*>\s*(.*?)\s*</(?:[\w.-]+:)?Issuer\s*>",
    re.DOTALL,
)


@dataclass(frozen=True)
class DecodeFailed:
    """Diagnostic for a request that could not be decoded."""

    reason: str
    raw_length: int

    def __str__(self) -> str:
        return f"Could not decode SAMLRequest ({self.raw_length} chars): {self.reason}"


@dataclass(frozen=True)
class AuthnCorrelation:
    """Fields of an inbound AuthnRequest used to stamp the outgoing response."""

    request_id: str
    issue_instant: str
    destination: str
    issuer: str | None = None
    synthesized: bool = False

    @classmethod
    def unsolicited(cls, destination: str) -> AuthnCorrelation:
        """Correlation for an IdP-initiated login with no request to answer."""
        return cls(
            request_id=generate_id(),
            issue_instant=format_instant(datetime.now(UTC)),
            destination=destination,
            synthesized=True,
        )


def _b64decode(raw: str) -> bytes:
    """Decode standard or URL-safe base64, tolerating whitespace and missing padding."""
    data = "".join(raw.split())
    if "-" in data or "_" in data:
        data = data.replace("-", "+").replace("_", "/")
    data += "=" * (-len(data) % 4)
    return base64.b64decode(data, validate=True)


def _report(failure: DecodeFailed) -> str:
    logger.warning(str(failure))
    return ""


def decode_request(raw: str | None) -> str:
    """Decode a SAMLRequest parameter into XML text.

    Handles both the HTTP-Redirect form (raw deflate, then base64) and the
    HTTP-POST form (base64 only).

    Args:
        raw: Base64 encoded, optionally raw-deflated request.

    Returns:
        The request XML, or an empty string if it could not be decoded.
    """
    if not raw or not raw.strip():
        return ""

    try:
        data = _b64decode(raw)
    except (binascii.Error, ValueError) as e:
        return _report(DecodeFailed(reason=f"invalid base64: {e}", raw_length=len(raw)))

    try:
        data = zlib.decompress(data, -15)
    except zlib.error:
        logger.debug("SAMLRequest is not deflated; treating as plain XML")

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        return _report(DecodeFailed(reason=f"not UTF-8 text: {e}", raw_length=len(raw)))

    if "<" not in text:
        return _report(DecodeFailed(reason="decoded payload is not XML", raw_length=len(raw)))
    return text


def extract_correlation(xml_text: str, destination: str) -> AuthnCorrelation:
    """Pull the request ID and issuer out of AuthnRequest XML.

    A request with no usable ``ID`` gets a freshly generated one so that an
    assertion can still be issued.

    Args:
        xml_text: Decoded AuthnRequest XML (may be empty).
        destination: ACS URL the response will be posted to.

    Returns:
        Correlation record for the response.
    """
    match = _ID_RE.search(xml_text or "")
    request_id = (match.group(1) or match.group(2) or "").strip() if match else ""

    issuer_match = _ISSUER_RE.search(xml_text or "")
    issuer = issuer_match.group(1) if issuer_match and issuer_match.group(1) else None

    if not request_id:
        correlation = replace(AuthnCorrelation.unsolicited(destination), issuer=issuer)
        logger.debug(f"No request ID found; synthesized {correlation.request_id}")
        return correlation

    return AuthnCorrelation(
        request_id=request_id,
        issue_instant=format_instant(datetime.now(UTC)),
        destination=destination,
        issuer=issuer,
    )


def correlate(raw: str | None, destination: str) -> AuthnCorrelation:
    """Decode a SAMLRequest and extract its correlation in one step.

    ``raw=None`` means an IdP-initiated login and always yields a
    synthesized correlation.
    """
    if raw is None:
        return AuthnCorrelation.unsolicited(destination)
    return extract_correlation(decode_request(raw), destination)
