"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest
import yaml

from mockidp.core.config import AppConfig, ConfigError, get_default_config_yaml, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MOCKIDP_* variables from the outer environment out of these tests."""
    import os

    for key in list(os.environ):
        if key.startswith("MOCKIDP_"):
            monkeypatch.delenv(key)


def test_defaults_without_file(tmp_path: Path):
    config = load_config(tmp_path / "missing.yaml")

    assert config.saml.idp_entity_id == "urn:test:idp"
    assert config.saml.sp_entity_id == "datasaur"
    assert config.saml.validity_seconds == 300
    assert config.scim.conflict_statuses == [409]
    assert config.config_path is None


def test_load_from_file(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "saml": {"idp_entity_id": "urn:custom:idp", "acs_url": "https://sp/acs"},
                "scim": {"conflict_statuses": [409, 400], "max_workers": 4},
                "users": [{"id": "1", "email": "a@x.com"}],
            }
        )
    )

    config = load_config(path)

    assert config.saml.idp_entity_id == "urn:custom:idp"
    assert config.saml.acs_url == "https://sp/acs"
    assert config.scim.conflict_statuses == [409, 400]
    assert config.scim.max_workers == 4
    assert config.users == [{"id": "1", "email": "a@x.com"}]
    assert config.config_path == path


def test_env_overrides_file(tmp_path: Path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("saml:\n  sp_entity_id: from-file\n")
    monkeypatch.setenv("MOCKIDP_SP_ENTITY_ID", "from-env")
    monkeypatch.setenv("MOCKIDP_SCIM_API_KEY", "env-key")
    monkeypatch.setenv("MOCKIDP_PORT", "8080")

    config = load_config(path)

    assert config.saml.sp_entity_id == "from-env"
    assert config.scim.api_key == "env-key"
    assert config.server.port == 8080


def test_invalid_yaml(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("saml: [unclosed\n")

    with pytest.raises(ConfigError):
        load_config(path)


def test_non_mapping_yaml(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


def test_invalid_value(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("saml:\n  validity_seconds: soon\n")

    with pytest.raises(ConfigError):
        load_config(path)


def test_unknown_generator_in_file(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("certificates:\n  generator: gnutls\n")

    with pytest.raises(ConfigError, match="Unknown certificate generator 'gnutls'"):
        load_config(path)


def test_unknown_generator_in_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("MOCKIDP_CERT_GENERATOR", "gnutls")

    with pytest.raises(ConfigError, match="Unknown certificate generator"):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    ("name", "value"),
    [("MOCKIDP_SCIM_TIMEOUT", "soon"), ("MOCKIDP_PORT", "eighty")],
)
def test_malformed_numeric_env(tmp_path: Path, monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError, match=name):
        load_config(tmp_path / "missing.yaml")


def test_scim_timeout_from_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("MOCKIDP_SCIM_TIMEOUT", "2.5")
    assert load_config(tmp_path / "missing.yaml").scim.timeout == 2.5


def test_derived_urls():
    config = AppConfig()
    config.saml.base_url = "https://idp.example.test/"

    assert config.saml.effective_login_url == "https://idp.example.test/saml/login"
    assert config.saml.effective_logout_url == "https://idp.example.test/saml/logout"

    config.saml.login_url = "https://elsewhere/login"
    assert config.saml.effective_login_url == "https://elsewhere/login"


def test_default_relay_state():
    config = AppConfig()
    config.saml.company_id = "acme"
    assert json.loads(config.saml.default_relay_state) == {"companyId": "acme"}


def test_relay_state_escapes_company_id():
    config = AppConfig()
    config.saml.company_id = 'ac"me'
    assert json.loads(config.saml.default_relay_state) == {"companyId": 'ac"me'}


def test_secrets_redacted_in_dict():
    config = AppConfig()
    config.scim.api_key = "remote-secret"
    config.scim.token = "local-secret"

    dumped = str(config.to_dict())

    assert "remote-secret" not in dumped
    assert "local-secret" not in dumped
    assert "[REDACTED]" in dumped


def test_default_config_yaml_loads(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(get_default_config_yaml())

    config = load_config(path)

    assert config.certificates.cert_path == Path("certs") / "cert.pem"
