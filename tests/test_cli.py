"""Tests for the CLI commands."""

import base64
import json
import zlib
from pathlib import Path

import httpx
import pytest
import yaml
from click.testing import CliRunner

from mockidp.cli.main import cli
from mockidp.core.saml.signature import verify_response
from mockidp.scim.reconcile import DirectoryReconciler

from conftest import REMOTE_BASE_URL, SCIM_API_KEY


def test_cli_version() -> None:
    """Test CLI version command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_cli_help() -> None:
    """Test CLI help command."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Mock SAML Identity Provider" in result.output
    for command in ("certs", "saml", "users", "sync", "serve", "config"):
        assert command in result.output


def test_serve_help() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["serve", "--help"])
    assert result.exit_code == 0
    assert "--port" in result.output


class TestWithConfig:
    """Commands run against an isolated config file."""

    @pytest.fixture(autouse=True)
    def setup_config(self, tmp_path: Path, monkeypatch) -> None:
        import os

        for key in list(os.environ):
            if key.startswith("MOCKIDP_"):
                monkeypatch.delenv(key)

        self.runner = CliRunner()
        self.cert_dir = tmp_path / "certs"
        self.config_path = tmp_path / "config.yaml"
        self.config_path.write_text(
            yaml.safe_dump(
                {
                    "certificates": {"output_dir": str(self.cert_dir), "common_name": "cli-test"},
                    "saml": {"acs_url": "https://sp.example.test/acs"},
                    "scim": {"base_url": REMOTE_BASE_URL},
                    "logging": {"level": "ERROR"},
                }
            )
        )

    def invoke(self, *args: str):
        return self.runner.invoke(cli, ["--config", str(self.config_path), *args])

    def test_users_list(self) -> None:
        result = self.invoke("users", "list")

        assert result.exit_code == 0
        assert "darwin+idp1@datasaur.ai" in result.output
        assert "ADMIN" in result.output

    def test_users_list_json(self) -> None:
        result = self.invoke("users", "list", "--json")

        assert result.exit_code == 0
        users = json.loads(result.stdout)
        assert len(users) == 5
        assert users[1]["role"] == "SUPERVISOR"

    def test_config_show_redacts_secrets(self, monkeypatch) -> None:
        monkeypatch.setenv("MOCKIDP_SCIM_API_KEY", "super-secret")

        result = self.invoke("config", "show", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["scim"]["api_key"] == "[REDACTED]"
        assert "super-secret" not in result.output

    def test_config_init(self, tmp_path: Path) -> None:
        output = tmp_path / "new-config.yaml"

        result = self.invoke("config", "init", "--output", str(output))
        assert result.exit_code == 0
        assert output.exists()

        again = self.invoke("config", "init", "--output", str(output))
        assert again.exit_code != 0
        assert "already exists" in again.output

    def test_certs_generate_and_show(self) -> None:
        result = self.invoke("certs", "generate")

        assert result.exit_code == 0, result.output
        assert "Certificate generated successfully!" in result.output
        assert (self.cert_dir / "cert.pem").exists()
        assert (self.cert_dir / "key.pem").exists()

        shown = self.invoke("certs", "show", "--json")
        assert shown.exit_code == 0
        info = json.loads(shown.stdout)
        assert "CN=cli-test" in info["subject"]
        assert info["valid"] is True

    def test_certs_generate_refuses_overwrite(self) -> None:
        assert self.invoke("certs", "generate").exit_code == 0

        result = self.invoke("certs", "generate")
        assert result.exit_code != 0
        assert "--force" in result.output

        forced = self.invoke("certs", "generate", "--force")
        assert forced.exit_code == 0

    def test_certs_show_without_certificate(self) -> None:
        result = self.invoke("certs", "show")

        assert result.exit_code != 0
        assert "mockidp certs generate" in result.output

    def test_certs_metadata(self) -> None:
        self.invoke("certs", "generate")

        result = self.invoke("certs", "metadata")

        assert result.exit_code == 0
        blob = result.stdout.strip()
        assert "BEGIN" not in blob
        assert "\n" not in blob

    def test_saml_metadata_generates_certificate(self) -> None:
        result = self.invoke("saml", "metadata")

        assert result.exit_code == 0
        assert "EntityDescriptor" in result.stdout
        assert (self.cert_dir / "cert.pem").exists()

    def test_saml_issue_and_verify(self) -> None:
        request = base64.b64encode(
            zlib.compress(b'<samlp:AuthnRequest ID="_cli123" Version="2.0"/>')[2:-4]
        ).decode()

        result = self.invoke(
            "saml", "issue", "--email", "darwin+idp3@datasaur.ai", "--request", request, "--verify"
        )

        assert result.exit_code == 0, result.output
        assert 'InResponseTo="_cli123"' in result.stdout
        assert "[VALID]" in result.output

        cert_pem = (self.cert_dir / "cert.pem").read_text()
        assert verify_response(result.stdout.strip(), cert_pem).is_valid

    def test_saml_issue_encoded(self) -> None:
        result = self.invoke("saml", "issue", "--email", "darwin+idp1@datasaur.ai", "--encoded")

        assert result.exit_code == 0
        xml = base64.b64decode(result.stdout.strip()).decode("utf-8")
        assert "darwin+idp1@datasaur.ai" in xml
        assert "InResponseTo" not in xml

    def test_saml_issue_unknown_user(self) -> None:
        result = self.invoke("saml", "issue", "--email", "nobody@example.com")

        assert result.exit_code != 0
        assert "User not found" in result.output

    def test_saml_decode(self) -> None:
        request = base64.b64encode(
            zlib.compress(
                b'<samlp:AuthnRequest ID="_dec1"><saml:Issuer>urn:test:sp</saml:Issuer></samlp:AuthnRequest>'
            )[2:-4]
        ).decode()

        result = self.invoke("saml", "decode", request, "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["request_id"] == "_dec1"
        assert data["issuer"] == "urn:test:sp"
        assert data["synthesized"] is False

    def test_saml_decode_garbage(self) -> None:
        result = self.invoke("saml", "decode", "%%%")

        assert result.exit_code != 0
        assert "Could not decode SAMLRequest" in result.output

    def test_sync_requires_api_key(self) -> None:
        result = self.invoke("sync")

        assert result.exit_code != 0
        assert "API key" in result.output

    def test_sync(self, monkeypatch, fake_scim) -> None:
        monkeypatch.setenv("MOCKIDP_SCIM_API_KEY", SCIM_API_KEY)
        original = DirectoryReconciler.from_settings

        def from_settings(settings, transport=None):
            return original(settings, transport=httpx.MockTransport(fake_scim.handler))

        monkeypatch.setattr(DirectoryReconciler, "from_settings", staticmethod(from_settings))

        result = self.invoke("sync")

        assert result.exit_code == 0, result.output
        assert "Synchronization complete!" in result.output
        assert "5 users synchronized successfully" in result.output
        assert len(fake_scim.resources) == 5

    def test_sync_with_failures_exits_nonzero(self, monkeypatch, fake_scim) -> None:
        monkeypatch.setenv("MOCKIDP_SCIM_API_KEY", SCIM_API_KEY)
        fake_scim.create_status["darwin+idp2@datasaur.ai"] = 500
        original = DirectoryReconciler.from_settings

        def from_settings(settings, transport=None):
            return original(settings, transport=httpx.MockTransport(fake_scim.handler))

        monkeypatch.setattr(DirectoryReconciler, "from_settings", staticmethod(from_settings))

        result = self.invoke("sync", "--json", "--workers", "3")

        assert result.exit_code == 1
        report = json.loads(result.stdout)
        assert report["failed"] == 1
        assert report["failures"] == ["darwin+idp2@datasaur.ai: Creation failed with status: 500"]
