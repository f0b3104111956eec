"""Signing certificate management.

Loads or generates the self-signed key material the IdP uses to sign
assertions, and formats the certificate for inclusion in SAML metadata.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
import subprocess
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

if TYPE_CHECKING:
    from mockidp.core.config import CertificateSettings

logger = logging.getLogger(__name__)

PEM_CERT_BEGIN = "-----BEGIN CERTIFICATE-----"
PEM_CERT_END = "-----END CERTIFICATE-----"

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")

OPENSSL_TIMEOUT_SECONDS = 60


class CertificateError(Exception):
    """Base exception for certificate-related errors."""


class CertificateNotFoundError(CertificateError):
    """Raised when the certificate or key file does not exist."""


class CertificateInvalidError(CertificateError):
    """Raised when certificate or key material is empty or unparseable."""


class CertificateGenerationFailed(CertificateError):
    """Raised when a new certificate/key pair could not be generated."""


class CertificateUnavailable(CertificateError):
    """Raised when no usable credential exists even after generation."""


@dataclass(frozen=True)
class CertificateSubject:
    """Distinguished name fields for a generated certificate."""

    country: str
    state: str
    locality: str
    organization: str
    organizational_unit: str
    common_name: str
    email: str | None = None

    @classmethod
    def from_settings(cls, settings: CertificateSettings) -> CertificateSubject:
        """Build the subject from certificate settings."""
        return cls(
            country=settings.country,
            state=settings.state,
            locality=settings.locality,
            organization=settings.organization,
            organizational_unit=settings.organizational_unit,
            common_name=settings.common_name,
            email=settings.email or None,
        )

    def to_x509_name(self) -> x509.Name:
        attributes = [
            x509.NameAttribute(NameOID.COMMON_NAME, self.common_name),
            x509.NameAttribute(NameOID.COUNTRY_NAME, self.country),
            x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, self.state),
            x509.NameAttribute(NameOID.LOCALITY_NAME, self.locality),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit),
        ]
        if self.email:
            attributes.append(x509.NameAttribute(NameOID.EMAIL_ADDRESS, self.email))
        return x509.Name(attributes)

    def to_openssl_subject(self) -> str:
        """Format the subject for ``openssl req -subj``."""

        def esc(value: str) -> str:
            return value.replace("\\", "\\\\").replace("/", "\\/")

        subject = (
            f"/CN={esc(self.common_name)}/C={esc(self.country)}/ST={esc(self.state)}"
            f"/L={esc(self.locality)}/O={esc(self.organization)}"
            f"/OU={esc(self.organizational_unit)}"
        )
        if self.email:
            subject += f"/emailAddress={esc(self.email)}"
        return subject


@dataclass(frozen=True)
class SigningCredential:
    """The active signing certificate and private key, as PEM text.

    Immutable: reloading produces a new instance rather than mutating this one.
    """

    certificate_pem: str
    private_key_pem: str

    def certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.certificate_pem.encode("utf-8"))

    def private_key(self) -> rsa.RSAPrivateKey:
        key = serialization.load_pem_private_key(
            self.private_key_pem.encode("utf-8"), password=None
        )
        if not isinstance(key, rsa.RSAPrivateKey):
            raise CertificateInvalidError(f"Expected RSA private key, got {type(key).__name__}")
        return key

    @property
    def fingerprint_sha256(self) -> str:
        return self.certificate().fingerprint(hashes.SHA256()).hex()


@dataclass
class CertificateInfo:
    """Information extracted from an X.509 certificate."""

    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    fingerprint_sha256: str
    is_self_signed: bool
    key_type: str
    key_size: int


def generate_private_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate an RSA private key.

    Args:
        key_size: RSA key size in bits. Values below 2048 are raised to 2048.

    Returns:
        RSA private key.
    """
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=max(key_size, 2048),
    )


def generate_self_signed_certificate(
    private_key: rsa.RSAPrivateKey,
    subject: CertificateSubject,
    days_valid: int = 7300,
) -> x509.Certificate:
    """Generate a self-signed X.509 signing certificate.

    Args:
        private_key: RSA private key to sign the certificate.
        subject: Distinguished name fields (also used as issuer).
        days_valid: Number of days the certificate is valid.

    Returns:
        Self-signed X.509 certificate.
    """
    name = subject.to_x509_name()
    now = datetime.now(UTC)

    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=days_valid))
        .add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(private_key, hashes.SHA256())
    )


def get_private_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    """Get the unencrypted PKCS#8 PEM encoding of a private key."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def get_certificate_pem(cert: x509.Certificate) -> str:
    """Get PEM-encoded string of a certificate."""
    return cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")


def _restrict_permissions(path: Path) -> None:
    os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)


def save_private_key(private_key: rsa.RSAPrivateKey, path: Path) -> None:
    """Save a private key to a PEM file with secure permissions (0600)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(mode=0o600)
    path.write_text(get_private_key_pem(private_key))
    # Ensure permissions are correct even if file existed
    _restrict_permissions(path)


def save_certificate(cert: x509.Certificate, path: Path) -> None:
    """Save a certificate to a PEM file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_certificate_pem(cert))


class CertificateGenerator(Protocol):
    """Strategy that writes a fresh certificate/key pair to disk."""

    def __call__(
        self,
        subject: CertificateSubject,
        cert_path: Path,
        key_path: Path,
        days_valid: int,
        key_size: int,
    ) -> None: ...


class CryptographyGenerator:
    """Generates key material in-process with the cryptography library."""

    def __call__(
        self,
        subject: CertificateSubject,
        cert_path: Path,
        key_path: Path,
        days_valid: int,
        key_size: int,
    ) -> None:
        try:
            private_key = generate_private_key(key_size)
            cert = generate_self_signed_certificate(private_key, subject, days_valid)
            save_private_key(private_key, key_path)
            save_certificate(cert, cert_path)
        except (OSError, ValueError) as e:
            raise CertificateGenerationFailed(f"Failed to generate certificate: {e}") from e


class OpenSSLGenerator:
    """Generates key material by invoking the ``openssl`` command line tool."""

    def __init__(self, binary: str = "openssl", timeout: int = OPENSSL_TIMEOUT_SECONDS) -> None:
        self.binary = binary
        self.timeout = timeout

    def build_command(
        self,
        subject: CertificateSubject,
        cert_path: Path,
        key_path: Path,
        days_valid: int,
        key_size: int,
    ) -> list[str]:
        return [
            self.binary,
            "req",
            "-x509",
            "-new",
            "-newkey",
            f"rsa:{max(key_size, 2048)}",
            "-keyout",
            str(key_path),
            "-out",
            str(cert_path),
            "-days",
            str(days_valid),
            "-nodes",
            "-subj",
            subject.to_openssl_subject(),
        ]

    def __call__(
        self,
        subject: CertificateSubject,
        cert_path: Path,
        key_path: Path,
        days_valid: int,
        key_size: int,
    ) -> None:
        if shutil.which(self.binary) is None:
            raise CertificateGenerationFailed(f"'{self.binary}' executable not found on PATH")

        cert_path.parent.mkdir(parents=True, exist_ok=True)
        key_path.parent.mkdir(parents=True, exist_ok=True)
        command = self.build_command(subject, cert_path, key_path, days_valid, key_size)
        logger.debug(f"Executing: {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise CertificateGenerationFailed(f"openssl invocation failed: {e}") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise CertificateGenerationFailed(
                f"openssl exited with status {result.returncode}: {detail}"
            )
        _restrict_permissions(key_path)


GENERATORS: dict[str, type[CryptographyGenerator] | type[OpenSSLGenerator]] = {
    "cryptography": CryptographyGenerator,
    "openssl": OpenSSLGenerator,
}


def get_generator(name: str) -> CertificateGenerator:
    """Look up a certificate generator by name."""
    try:
        return GENERATORS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown certificate generator '{name}' (expected one of: {', '.join(GENERATORS)})"
        ) from None


def _parse_credential(certificate_pem: str, private_key_pem: str) -> SigningCredential:
    """Validate PEM text and build a credential, checking the key matches the certificate."""
    credential = SigningCredential(certificate_pem=certificate_pem, private_key_pem=private_key_pem)
    try:
        cert = credential.certificate()
    except ValueError as e:
        raise CertificateInvalidError(f"Certificate is not valid PEM: {e}") from e
    try:
        key = credential.private_key()
    except (ValueError, TypeError) as e:
        raise CertificateInvalidError(f"Private key is not valid PEM: {e}") from e

    if cert.public_key().public_numbers() != key.public_key().public_numbers():
        raise CertificateInvalidError("Private key does not match certificate")
    return credential


class CertificateStore:
    """Loads the signing credential from disk, generating it when missing or corrupt."""

    def __init__(
        self,
        cert_path: Path,
        key_path: Path,
        subject: CertificateSubject,
        days_valid: int = 7300,
        key_size: int = 2048,
        generator: CertificateGenerator | None = None,
    ) -> None:
        self.cert_path = cert_path
        self.key_path = key_path
        self.subject = subject
        self.days_valid = days_valid
        self.key_size = max(key_size, 2048)
        self.generator: CertificateGenerator = generator or CryptographyGenerator()

    @classmethod
    def from_settings(cls, settings: CertificateSettings) -> CertificateStore:
        """Create a store from the certificates section of the app config."""
        return cls(
            cert_path=settings.cert_path,
            key_path=settings.key_path,
            subject=CertificateSubject.from_settings(settings),
            days_valid=settings.days_valid,
            key_size=settings.key_size,
            generator=get_generator(settings.generator),
        )

    def load(self) -> SigningCredential:
        """Read the certificate and key from disk.

        Raises:
            CertificateNotFoundError: If either file is absent.
            CertificateInvalidError: If either file is empty, unparseable,
                or the key does not match the certificate.
        """
        for path in (self.cert_path, self.key_path):
            if not path.exists():
                raise CertificateNotFoundError(f"Certificate file not found: {path}")

        try:
            certificate_pem = self.cert_path.read_text()
            private_key_pem = self.key_path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            raise CertificateInvalidError(f"Failed to read certificate files: {e}") from e

        if not certificate_pem.strip() or not private_key_pem.strip():
            raise CertificateInvalidError("Empty certificate or private key")

        return _parse_credential(certificate_pem, private_key_pem)

    def generate(self, subject: CertificateSubject | None = None) -> SigningCredential:
        """Generate and persist a new self-signed certificate and unencrypted key.

        Raises:
            CertificateGenerationFailed: If the generator fails.
        """
        self._run_generator(subject or self.subject)
        try:
            return self.load()
        except CertificateError as e:
            raise CertificateGenerationFailed(f"Generated files are unusable: {e}") from e

    def _run_generator(self, subject: CertificateSubject) -> None:
        logger.info(
            f"Generating signing certificate for CN={subject.common_name} "
            f"(valid {self.days_valid} days) in {self.cert_path.parent}"
        )
        self.generator(subject, self.cert_path, self.key_path, self.days_valid, self.key_size)

    def ensure(self) -> SigningCredential:
        """Load the credential, generating a new one if it is missing or corrupt.

        Raises:
            CertificateGenerationFailed: If generation itself fails.
            CertificateUnavailable: If the credential still cannot be loaded.
        """
        try:
            return self.load()
        except CertificateError as e:
            logger.warning(f"Signing certificate unavailable ({e}); generating a new one")

        self._run_generator(self.subject)

        try:
            credential = self.load()
        except CertificateError as e:
            raise CertificateUnavailable(f"Certificate still unavailable after generation: {e}") from e

        info = describe_certificate(credential.certificate_pem)
        logger.info(
            f"Signing certificate ready: subject={info.subject} "
            f"not_after={info.not_after.isoformat()} sha256={info.fingerprint_sha256}"
        )
        return credential


class CredentialHolder:
    """Holds the active SigningCredential by reference.

    Readers take ``holder.credential`` once per operation; ``reload()``
    swaps in a newly constructed credential without touching the old one.
    """

    def __init__(self, store: CertificateStore, credential: SigningCredential | None = None) -> None:
        self._store = store
        self._credential = credential
        self._lock = threading.Lock()

    @property
    def credential(self) -> SigningCredential:
        credential = self._credential
        if credential is None:
            with self._lock:
                if self._credential is None:
                    self._credential = self._store.ensure()
                credential = self._credential
        return credential

    def reload(self) -> SigningCredential:
        """Load (or regenerate) the credential from disk and make it the active one."""
        with self._lock:
            credential = self._store.ensure()
            self._credential = credential
        logger.info("Signing credential reloaded")
        return credential


def normalize_certificate_pem(text: str) -> str:
    """Rewrite certificate text as canonical PEM.

    Accepts a PEM block (with or without markers, with any line wrapping)
    and returns it with markers and the base64 payload wrapped at 64
    characters. Only the first certificate is kept when a chain is given.

    Raises:
        CertificateInvalidError: If there is no base64 payload.
    """
    body = text.strip()
    if PEM_CERT_BEGIN not in body:
        body = f"{PEM_CERT_BEGIN}\n{body}\n{PEM_CERT_END}"

    start = body.index(PEM_CERT_BEGIN) + len(PEM_CERT_BEGIN)
    end = body.find(PEM_CERT_END, start)
    payload = body[start:] if end == -1 else body[start:end]
    payload = "".join(payload.split())

    if not payload or not _BASE64_RE.match(payload):
        raise CertificateInvalidError("Certificate text does not contain a base64 payload")

    lines = [payload[i : i + 64] for i in range(0, len(payload), 64)]
    return "\n".join([PEM_CERT_BEGIN, *lines, PEM_CERT_END]) + "\n"


def format_for_metadata(certificate_pem: str) -> str:
    """Format a certificate as the bare base64 blob used in ``ds:X509Certificate``.

    Idempotent: formatting the output again yields the same string.
    """
    pem = normalize_certificate_pem(certificate_pem)
    return pem.replace(PEM_CERT_BEGIN, "").replace(PEM_CERT_END, "").replace("\n", "")


def describe_certificate(certificate_pem: str) -> CertificateInfo:
    """Extract display information from a PEM-encoded certificate."""
    cert = x509.load_pem_x509_certificate(
        normalize_certificate_pem(certificate_pem).encode("utf-8")
    )
    public_key = cert.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        key_type = "RSA"
        key_size = public_key.key_size
    else:
        key_type = type(public_key).__name__
        key_size = 0

    return CertificateInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        serial_number=format(cert.serial_number, "x"),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
        is_self_signed=cert.subject == cert.issuer,
        key_type=key_type,
        key_size=key_size,
    )


def is_certificate_valid(certificate_pem: str) -> bool:
    """Check if a certificate is currently within its validity window."""
    info = describe_certificate(certificate_pem)
    now = datetime.now(UTC)
    return info.not_before <= now <= info.not_after
