"""SAML Response issuance.

Builds a signed ``samlp:Response`` for a directory user. The document is
assembled from typed fields with lxml (no string templates), and the
fields are validated before any XML is produced so an unresolved value
can never leak into the output.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from lxml import etree
from signxml import XMLSigner, methods
from signxml.algorithms import CanonicalizationMethod, DigestAlgorithm, SignatureMethod

from mockidp.core.saml.utils import (
    ATTRNAME_FORMAT_BASIC,
    ATTRNAME_FORMAT_URI,
    AUTHN_CONTEXT_PPT,
    CLAIM_EMAIL,
    CLAIM_GIVEN_NAME,
    CLAIM_ROLE,
    CLAIM_SURNAME,
    CONFIRMATION_BEARER,
    DSIG_NS,
    NAMEID_FORMAT_EMAIL,
    NSMAP,
    SAML_NS,
    SAMLP_NS,
    STATUS_SUCCESS,
    XS_NS,
    XSI_NS,
    format_instant,
    generate_id,
)

if TYPE_CHECKING:
    from mockidp.core.crypto.certs import SigningCredential
    from mockidp.core.saml.decoder import AuthnCorrelation
    from mockidp.directory import DirectoryUser

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY = timedelta(minutes=5)


class SAMLError(Exception):
    """Base exception for assertion issuance errors."""


class SigningFailed(SAMLError):
    """Raised when the signing key or certificate cannot be used."""


class TemplateError(SAMLError):
    """Raised when a required assertion field is missing or empty."""


@dataclass(frozen=True)
class SignedAssertion:
    """A signed SAML Response ready for the HTTP-POST binding."""

    xml_document: str
    relay_state: str | None = None
    response_id: str = ""
    assertion_id: str = ""

    def encode(self) -> str:
        """Base64 form for the ``SAMLResponse`` form field."""
        return base64.b64encode(self.xml_document.encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class SAMLAttribute:
    name: str
    value: str
    name_format: str = ATTRNAME_FORMAT_BASIC


@dataclass(frozen=True)
class AssertionFields:
    """Every value placed into the response document."""

    response_id: str
    assertion_id: str
    issue_instant: str
    not_before: str
    not_on_or_after: str
    authn_instant: str
    session_index: str
    idp_entity_id: str
    sp_entity_id: str
    acs_url: str
    name_id: str
    in_response_to: str | None = None
    attributes: tuple[SAMLAttribute, ...] = field(default_factory=tuple)

    OPTIONAL = frozenset({"in_response_to", "attributes"})

    def validate(self) -> None:
        """Check that every required field resolved to a non-empty string.

        Raises:
            TemplateError: Naming the first field that is empty.
        """
        for f in fields(self):
            if f.name in self.OPTIONAL:
                continue
            value = getattr(self, f.name)
            if not isinstance(value, str) or not value.strip():
                raise TemplateError(f"Required assertion field '{f.name}' is empty")

        for attribute in self.attributes:
            if not attribute.name:
                raise TemplateError("Assertion attribute with an empty name")


def user_attributes(user: DirectoryUser) -> tuple[SAMLAttribute, ...]:
    """Attribute statement values, under both simple keys and claim URIs."""
    role = str(user.role)
    return (
        SAMLAttribute("email", user.email),
        SAMLAttribute("firstName", user.first_name),
        SAMLAttribute("lastName", user.last_name),
        SAMLAttribute("role", role),
        SAMLAttribute(CLAIM_EMAIL, user.email, ATTRNAME_FORMAT_URI),
        SAMLAttribute(CLAIM_GIVEN_NAME, user.first_name, ATTRNAME_FORMAT_URI),
        SAMLAttribute(CLAIM_SURNAME, user.last_name, ATTRNAME_FORMAT_URI),
        SAMLAttribute(CLAIM_ROLE, role, ATTRNAME_FORMAT_URI),
    )


def _saml(tag: str) -> str:
    return f"{{{SAML_NS}}}{tag}"


def _samlp(tag: str) -> str:
    return f"{{{SAMLP_NS}}}{tag}"


def _signature_placeholder() -> etree._Element:
    return etree.Element(f"{{{DSIG_NS}}}Signature", Id="placeholder", nsmap={"ds": DSIG_NS})


def build_assertion(f: AssertionFields) -> etree._Element:
    """Build a standalone ``saml:Assertion`` element."""
    assertion = etree.Element(
        _saml("Assertion"),
        nsmap={"saml": SAML_NS},
        ID=f.assertion_id,
        Version="2.0",
        IssueInstant=f.issue_instant,
    )
    etree.SubElement(assertion, _saml("Issuer")).text = f.idp_entity_id

    subject = etree.SubElement(assertion, _saml("Subject"))
    name_id = etree.SubElement(subject, _saml("NameID"), Format=NAMEID_FORMAT_EMAIL)
    name_id.text = f.name_id
    confirmation = etree.SubElement(subject, _saml("SubjectConfirmation"), Method=CONFIRMATION_BEARER)
    confirmation_data = etree.SubElement(
        confirmation,
        _saml("SubjectConfirmationData"),
        NotOnOrAfter=f.not_on_or_after,
        Recipient=f.acs_url,
    )
    if f.in_response_to:
        confirmation_data.set("InResponseTo", f.in_response_to)

    conditions = etree.SubElement(
        assertion, _saml("Conditions"), NotBefore=f.not_before, NotOnOrAfter=f.not_on_or_after
    )
    restriction = etree.SubElement(conditions, _saml("AudienceRestriction"))
    etree.SubElement(restriction, _saml("Audience")).text = f.sp_entity_id

    statement = etree.SubElement(
        assertion,
        _saml("AuthnStatement"),
        AuthnInstant=f.authn_instant,
        SessionIndex=f.session_index,
    )
    context = etree.SubElement(statement, _saml("AuthnContext"))
    etree.SubElement(context, _saml("AuthnContextClassRef")).text = AUTHN_CONTEXT_PPT

    if f.attributes:
        attribute_statement = etree.SubElement(assertion, _saml("AttributeStatement"))
        for attribute in f.attributes:
            attr = etree.SubElement(
                attribute_statement,
                _saml("Attribute"),
                Name=attribute.name,
                NameFormat=attribute.name_format,
            )
            value = etree.SubElement(
                attr, _saml("AttributeValue"), nsmap={"xs": XS_NS, "xsi": XSI_NS}
            )
            value.set(f"{{{XSI_NS}}}type", "xs:string")
            value.text = attribute.value

    return assertion


def build_response(f: AssertionFields, assertion: etree._Element) -> etree._Element:
    """Wrap an assertion in a ``samlp:Response``."""
    response = etree.Element(
        _samlp("Response"),
        nsmap=NSMAP,
        ID=f.response_id,
        Version="2.0",
        IssueInstant=f.issue_instant,
        Destination=f.acs_url,
    )
    if f.in_response_to:
        response.set("InResponseTo", f.in_response_to)

    etree.SubElement(response, _saml("Issuer")).text = f.idp_entity_id
    status = etree.SubElement(response, _samlp("Status"))
    etree.SubElement(status, _samlp("StatusCode"), Value=STATUS_SUCCESS)
    response.append(assertion)
    return response


class AssertionIssuer:
    """Issues signed SAML Responses for directory users.

    Holds only configuration; every call builds a fresh document, so one
    instance can serve concurrent logins.
    """

    def __init__(
        self,
        idp_entity_id: str,
        sp_entity_id: str,
        sign_assertion: bool = True,
        sign_response: bool = True,
        validity: timedelta = DEFAULT_VALIDITY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.idp_entity_id = idp_entity_id
        self.sp_entity_id = sp_entity_id
        self.sign_assertion = sign_assertion
        self.sign_response = sign_response
        self.validity = validity
        self._clock = clock or (lambda: datetime.now(UTC))

    def _now(self) -> datetime:
        now = self._clock().astimezone(UTC)
        # SAML instants carry millisecond precision
        return now.replace(microsecond=(now.microsecond // 1000) * 1000)

    def build_fields(
        self,
        user: DirectoryUser,
        acs_url: str,
        correlation: AuthnCorrelation,
    ) -> AssertionFields:
        now = self._now()
        issued = format_instant(now)
        return AssertionFields(
            response_id=generate_id(),
            assertion_id=generate_id(),
            issue_instant=issued,
            not_before=issued,
            not_on_or_after=format_instant(now + self.validity),
            authn_instant=issued,
            session_index=generate_id(),
            idp_entity_id=self.idp_entity_id,
            sp_entity_id=self.sp_entity_id,
            acs_url=acs_url,
            name_id=user.email,
            in_response_to=None if correlation.synthesized else correlation.request_id,
            attributes=user_attributes(user),
        )

    def issue(
        self,
        user: DirectoryUser,
        acs_url: str,
        correlation: AuthnCorrelation,
        credential: SigningCredential,
        relay_state: str | None = None,
    ) -> SignedAssertion:
        """Issue a signed SAML Response for ``user``.

        Args:
            user: Authenticated directory user; becomes the NameID subject.
            acs_url: Service Provider ACS endpoint (Destination and Recipient).
            correlation: Request being answered. A synthesized correlation
                produces an unsolicited response without ``InResponseTo``.
            credential: Key and certificate used to sign.
            relay_state: Opaque value passed back with the response.

        Returns:
            The signed document.

        Raises:
            TemplateError: If a required field is empty.
            SigningFailed: If the credential cannot be used to sign.
        """
        f = self.build_fields(user, acs_url, correlation)
        f.validate()

        assertion = build_assertion(f)
        if self.sign_assertion:
            assertion.find(_saml("Issuer")).addnext(_signature_placeholder())
            assertion = self._sign(assertion, f.assertion_id, credential)

        response = build_response(f, assertion)
        if self.sign_response:
            response.find(_saml("Issuer")).addnext(_signature_placeholder())
            response = self._sign(response, f.response_id, credential)

        xml_document = etree.tostring(response, encoding="unicode")
        logger.info(
            f"Issued SAML response {f.response_id} for {user.email} "
            f"(InResponseTo={f.in_response_to or '-'}, Destination={acs_url})"
        )
        return SignedAssertion(
            xml_document=xml_document,
            relay_state=relay_state,
            response_id=f.response_id,
            assertion_id=f.assertion_id,
        )

    def _sign(
        self, element: etree._Element, element_id: str, credential: SigningCredential
    ) -> etree._Element:
        signer = XMLSigner(
            method=methods.enveloped,
            signature_algorithm=SignatureMethod.RSA_SHA256,
            digest_algorithm=DigestAlgorithm.SHA256,
            c14n_algorithm=CanonicalizationMethod.EXCLUSIVE_XML_CANONICALIZATION_1_0,
        )
        try:
            return signer.sign(
                element,
                key=credential.private_key(),
                cert=credential.certificate_pem,
                reference_uri=f"#{element_id}",
            )
        except Exception as e:
            raise SigningFailed(f"Failed to sign {etree.QName(element).localname}: {e}") from e
