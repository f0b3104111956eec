"""Signing key and certificate management."""

from mockidp.core.crypto.certs import (
    CertificateError,
    CertificateGenerationFailed,
    CertificateInvalidError,
    CertificateNotFoundError,
    CertificateStore,
    CertificateSubject,
    CertificateUnavailable,
    CredentialHolder,
    SigningCredential,
    format_for_metadata,
)

__all__ = [
    "CertificateError",
    "CertificateGenerationFailed",
    "CertificateInvalidError",
    "CertificateNotFoundError",
    "CertificateStore",
    "CertificateSubject",
    "CertificateUnavailable",
    "CredentialHolder",
    "SigningCredential",
    "format_for_metadata",
]
