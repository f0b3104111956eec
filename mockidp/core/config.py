"""Application configuration management.

Loads configuration from config.yaml files and environment variables.
Environment variables take precedence over config file settings. The
resulting AppConfig is built once at startup and handed to each component.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default config location (relative to the working directory)
DEFAULT_CONFIG_FILE = Path("config.yaml")

# Environment variable prefix
ENV_PREFIX = "MOCKIDP_"

DEFAULT_ACS_URL = "https://app.datasaur.ai/api/auth/multi-saml/redirect"
DEFAULT_SCIM_BASE_URL = "https://app.datasaur.ai/api/teams/:teamId/scim/v2"

MIN_KEY_SIZE = 2048

# Names accepted for certificates.generator
GENERATOR_NAMES = ("cryptography", "openssl")


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is invalid."""


def _check_generator(name: str) -> str:
    if name not in GENERATOR_NAMES:
        raise ConfigError(
            f"Unknown certificate generator '{name}' (expected one of: {', '.join(GENERATOR_NAMES)})"
        )
    return name


@dataclass
class CertificateSettings:
    """Signing certificate location and subject settings."""

    output_dir: Path = Path("certs")
    cert_filename: str = "cert.pem"
    key_filename: str = "key.pem"
    country: str = "ID"
    state: str = "Banten"
    locality: str = "Kabupaten Tangerang"
    organization: str = "YourCompany"
    organizational_unit: str = "YourDepartment"
    common_name: str = "localhost"
    email: str = ""
    days_valid: int = 7300
    key_size: int = MIN_KEY_SIZE
    generator: str = "cryptography"

    @property
    def cert_path(self) -> Path:
        return self.output_dir / self.cert_filename

    @property
    def key_path(self) -> Path:
        return self.output_dir / self.key_filename

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CertificateSettings:
        """Create CertificateSettings from a dictionary."""
        defaults = cls()
        return cls(
            output_dir=Path(data.get("output_dir", defaults.output_dir)),
            cert_filename=data.get("cert_filename", defaults.cert_filename),
            key_filename=data.get("key_filename", defaults.key_filename),
            country=data.get("country", defaults.country),
            state=data.get("state", defaults.state),
            locality=data.get("locality", defaults.locality),
            organization=data.get("organization", defaults.organization),
            organizational_unit=data.get("organizational_unit", defaults.organizational_unit),
            common_name=data.get("common_name", defaults.common_name),
            email=data.get("email") or "",
            days_valid=int(data.get("days_valid", defaults.days_valid)),
            key_size=max(int(data.get("key_size", defaults.key_size)), MIN_KEY_SIZE),
            generator=_check_generator(data.get("generator", defaults.generator)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "output_dir": str(self.output_dir),
            "cert_filename": self.cert_filename,
            "key_filename": self.key_filename,
            "country": self.country,
            "state": self.state,
            "locality": self.locality,
            "organization": self.organization,
            "organizational_unit": self.organizational_unit,
            "common_name": self.common_name,
            "email": self.email,
            "days_valid": self.days_valid,
            "key_size": self.key_size,
            "generator": self.generator,
        }


@dataclass
class SAMLSettings:
    """Identity Provider and Service Provider settings."""

    base_url: str = "http://localhost:3000"
    idp_entity_id: str = "urn:test:idp"
    login_url: str | None = None
    logout_url: str | None = None
    sp_entity_id: str = "datasaur"
    acs_url: str = DEFAULT_ACS_URL
    sign_assertion: bool = True
    sign_response: bool = True
    validity_seconds: int = 300
    company_id: str = "your-company-id"

    @property
    def effective_login_url(self) -> str:
        return self.login_url or f"{self.base_url.rstrip('/')}/saml/login"

    @property
    def effective_logout_url(self) -> str:
        return self.logout_url or f"{self.base_url.rstrip('/')}/saml/logout"

    @property
    def default_relay_state(self) -> str:
        return json.dumps({"companyId": self.company_id})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SAMLSettings:
        """Create SAMLSettings from a dictionary."""
        defaults = cls()
        return cls(
            base_url=data.get("base_url", defaults.base_url),
            idp_entity_id=data.get("idp_entity_id", defaults.idp_entity_id),
            login_url=data.get("login_url"),
            logout_url=data.get("logout_url"),
            sp_entity_id=data.get("sp_entity_id", defaults.sp_entity_id),
            acs_url=data.get("acs_url", defaults.acs_url),
            sign_assertion=data.get("sign_assertion", defaults.sign_assertion),
            sign_response=data.get("sign_response", defaults.sign_response),
            validity_seconds=int(data.get("validity_seconds", defaults.validity_seconds)),
            company_id=data.get("company_id", defaults.company_id),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "base_url": self.base_url,
            "idp_entity_id": self.idp_entity_id,
            "login_url": self.login_url,
            "logout_url": self.logout_url,
            "sp_entity_id": self.sp_entity_id,
            "acs_url": self.acs_url,
            "sign_assertion": self.sign_assertion,
            "sign_response": self.sign_response,
            "validity_seconds": self.validity_seconds,
            "company_id": self.company_id,
        }


@dataclass
class SCIMSettings:
    """Remote SCIM endpoint and local SCIM endpoint settings."""

    base_url: str = DEFAULT_SCIM_BASE_URL
    api_key: str = ""
    token: str = ""
    timeout: float = 15.0
    verify_tls: bool = True
    conflict_statuses: list[int] = field(default_factory=lambda: [409])
    max_workers: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SCIMSettings:
        """Create SCIMSettings from a dictionary."""
        defaults = cls()
        return cls(
            base_url=data.get("base_url", defaults.base_url),
            api_key=data.get("api_key") or "",
            token=data.get("token") or "",
            timeout=float(data.get("timeout", defaults.timeout)),
            verify_tls=data.get("verify_tls", defaults.verify_tls),
            conflict_statuses=[int(s) for s in data.get("conflict_statuses", [409])],
            max_workers=max(int(data.get("max_workers", defaults.max_workers)), 1),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "base_url": self.base_url,
            "api_key": "[REDACTED]" if self.api_key else "",
            "token": "[REDACTED]" if self.token else "",
            "timeout": self.timeout,
            "verify_tls": self.verify_tls,
            "conflict_statuses": list(self.conflict_statuses),
            "max_workers": self.max_workers,
        }


@dataclass
class ServerSettings:
    """Server configuration settings."""

    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    secret_key: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerSettings:
        """Create ServerSettings from a dictionary."""
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=int(data.get("port", 3000)),
            debug=data.get("debug", False),
            secret_key=data.get("secret_key") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "secret_key": "[REDACTED]" if self.secret_key else "",
        }


@dataclass
class LoggingSettings:
    """Logging configuration settings."""

    level: str = "INFO"
    trace_enabled: bool = False
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create LoggingSettings from a dictionary."""
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            trace_enabled=data.get("trace_enabled", False),
            log_file=data.get("log_file"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "level": self.level,
            "trace_enabled": self.trace_enabled,
            "log_file": self.log_file,
        }


@dataclass
class AppConfig:
    """Main application configuration."""

    server: ServerSettings = field(default_factory=ServerSettings)
    certificates: CertificateSettings = field(default_factory=CertificateSettings)
    saml: SAMLSettings = field(default_factory=SAMLSettings)
    scim: SCIMSettings = field(default_factory=SCIMSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    users: list[dict[str, Any]] = field(default_factory=list)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> AppConfig:
        """Create AppConfig from a dictionary."""
        return cls(
            server=ServerSettings.from_dict(data.get("server") or {}),
            certificates=CertificateSettings.from_dict(data.get("certificates") or {}),
            saml=SAMLSettings.from_dict(data.get("saml") or {}),
            scim=SCIMSettings.from_dict(data.get("scim") or {}),
            logging=LoggingSettings.from_dict(data.get("logging") or {}),
            users=list(data.get("users") or []),
            config_path=config_path,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "server": self.server.to_dict(),
            "certificates": self.certificates.to_dict(),
            "saml": self.saml.to_dict(),
            "scim": self.scim.to_dict(),
            "logging": self.logging.to_dict(),
        }
        if self.users:
            data["users"] = self.users
        return data


def _get_env_bool(key: str, default: bool) -> bool:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _get_env_float(key: str, default: float) -> float:
    """Get a number from environment variable."""
    value = os.environ.get(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def _get_env_str(key: str, default: str) -> str:
    return os.environ.get(key) or default


def _apply_env(config: AppConfig) -> None:
    """Override configuration values from MOCKIDP_* environment variables."""
    server = config.server
    server.host = _get_env_str(f"{ENV_PREFIX}HOST", server.host)
    server.port = _get_env_int(f"{ENV_PREFIX}PORT", server.port)
    server.debug = _get_env_bool(f"{ENV_PREFIX}DEBUG", server.debug)
    server.secret_key = _get_env_str(f"{ENV_PREFIX}SECRET_KEY", server.secret_key)

    certs = config.certificates
    if os.environ.get(f"{ENV_PREFIX}CERT_OUTPUT_DIR"):
        certs.output_dir = Path(os.environ[f"{ENV_PREFIX}CERT_OUTPUT_DIR"])
    certs.country = _get_env_str(f"{ENV_PREFIX}CERT_COUNTRY", certs.country)
    certs.state = _get_env_str(f"{ENV_PREFIX}CERT_STATE", certs.state)
    certs.locality = _get_env_str(f"{ENV_PREFIX}CERT_LOCALITY", certs.locality)
    certs.organization = _get_env_str(f"{ENV_PREFIX}CERT_ORGANIZATION", certs.organization)
    certs.organizational_unit = _get_env_str(
        f"{ENV_PREFIX}CERT_ORG_UNIT", certs.organizational_unit
    )
    certs.common_name = _get_env_str(f"{ENV_PREFIX}CERT_COMMON_NAME", certs.common_name)
    certs.email = _get_env_str(f"{ENV_PREFIX}CERT_EMAIL", certs.email)
    certs.days_valid = _get_env_int(f"{ENV_PREFIX}CERT_DAYS_VALID", certs.days_valid)
    certs.generator = _check_generator(
        _get_env_str(f"{ENV_PREFIX}CERT_GENERATOR", certs.generator)
    )

    saml = config.saml
    saml.base_url = _get_env_str(f"{ENV_PREFIX}BASE_URL", saml.base_url)
    saml.idp_entity_id = _get_env_str(f"{ENV_PREFIX}IDP_ENTITY_ID", saml.idp_entity_id)
    saml.login_url = os.environ.get(f"{ENV_PREFIX}IDP_LOGIN_URL") or saml.login_url
    saml.logout_url = os.environ.get(f"{ENV_PREFIX}IDP_LOGOUT_URL") or saml.logout_url
    saml.sp_entity_id = _get_env_str(f"{ENV_PREFIX}SP_ENTITY_ID", saml.sp_entity_id)
    saml.acs_url = _get_env_str(f"{ENV_PREFIX}SP_ACS_URL", saml.acs_url)
    saml.sign_response = _get_env_bool(f"{ENV_PREFIX}SIGN_RESPONSE", saml.sign_response)
    saml.company_id = _get_env_str(f"{ENV_PREFIX}COMPANY_ID", saml.company_id)

    scim = config.scim
    scim.base_url = _get_env_str(f"{ENV_PREFIX}SCIM_BASE_URL", scim.base_url)
    scim.api_key = _get_env_str(f"{ENV_PREFIX}SCIM_API_KEY", scim.api_key)
    scim.token = _get_env_str(f"{ENV_PREFIX}SCIM_TOKEN", scim.token)
    scim.verify_tls = _get_env_bool(f"{ENV_PREFIX}SCIM_VERIFY_TLS", scim.verify_tls)
    scim.max_workers = max(_get_env_int(f"{ENV_PREFIX}SCIM_MAX_WORKERS", scim.max_workers), 1)
    scim.timeout = _get_env_float(f"{ENV_PREFIX}SCIM_TIMEOUT", scim.timeout)

    log = config.logging
    log.level = _get_env_str(f"{ENV_PREFIX}LOG_LEVEL", log.level).upper()
    log.trace_enabled = _get_env_bool(f"{ENV_PREFIX}LOG_TRACE", log.trace_enabled)


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    Args:
        config_path: Path to config file. Uses ./config.yaml if not specified.

    Returns:
        AppConfig with merged settings.

    Raises:
        ConfigError: If the config file exists but cannot be parsed.
    """
    config = AppConfig()

    file_path = config_path or DEFAULT_CONFIG_FILE
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {file_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {file_path} must contain a mapping")
        try:
            config = AppConfig.from_dict(data, config_path=file_path)
        except (ConfigError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in config file {file_path}: {e}") from e

    _apply_env(config)
    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string.

    Useful for generating example configuration files.
    """
    return """\
# mockidp configuration file
# Environment variables override these settings (prefix: MOCKIDP_)

server:
  host: "127.0.0.1"
  port: 3000
  debug: false

certificates:
  # Directory holding cert.pem and key.pem; generated on first start if absent
  output_dir: "certs"
  country: "ID"
  state: "Banten"
  locality: "Kabupaten Tangerang"
  organization: "YourCompany"
  organizational_unit: "YourDepartment"
  common_name: "localhost"
  email: ""
  days_valid: 7300
  # "cryptography" (in-process) or "openssl" (external toolchain)
  generator: "cryptography"

saml:
  base_url: "http://localhost:3000"
  idp_entity_id: "urn:test:idp"
  sp_entity_id: "datasaur"
  acs_url: "https://app.datasaur.ai/api/auth/multi-saml/redirect"
  sign_assertion: true
  sign_response: true
  company_id: "your-company-id"

scim:
  # Remote SCIM service the local directory is mirrored into
  base_url: "https://app.datasaur.ai/api/teams/:teamId/scim/v2"
  # api_key: set MOCKIDP_SCIM_API_KEY instead of storing it here
  timeout: 15
  conflict_statuses: [409]
  max_workers: 1

logging:
  level: "INFO"
  trace_enabled: false
"""
