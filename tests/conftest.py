"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Generator
from pathlib import Path

import httpx
import pytest
from flask import Flask
from flask.testing import FlaskClient

from mockidp.app import create_app
from mockidp.core.config import AppConfig
from mockidp.core.crypto.certs import (
    CertificateStore,
    CertificateSubject,
    CredentialHolder,
    SigningCredential,
)
from mockidp.core.logging import package_logger
from mockidp.scim.client import RemoteDirectoryClient
from mockidp.scim.reconcile import DirectoryReconciler
from mockidp.scim.schema import resource_emails

SCIM_TOKEN = "test-scim-token"
SCIM_API_KEY = "test-api-key"
REMOTE_BASE_URL = "https://sp.example.test/scim/v2"

TEST_SUBJECT = CertificateSubject(
    country="ID",
    state="Banten",
    locality="Tangerang",
    organization="Test Org",
    organizational_unit="QA",
    common_name="mockidp-test",
)


class FakeSCIMService:
    """In-memory remote SCIM service served through httpx.MockTransport."""

    def __init__(self, api_key: str = SCIM_API_KEY) -> None:
        self.api_key = api_key
        self.resources: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        # email -> status returned by POST /Users
        self.create_status: dict[str, int] = {}
        # emails reported as conflicts even though nothing is stored
        self.phantom_conflicts: set[str] = set()
        self.conflict_status = 409
        self.list_status = 200
        self.update_status = 200
        # server-imposed page size for GET /Users; None returns everything
        self.page_size: int | None = None
        self.timeout_emails: set[str] = set()
        self.on_create: Callable[[str], None] | None = None
        self._next_id = 1
        self._lock = threading.Lock()

    def add_remote(self, resource: dict) -> str:
        remote_id = f"remote-{self._next_id}"
        self._next_id += 1
        self.resources[remote_id] = {**resource, "id": remote_id}
        return remote_id

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            return self._handle(request)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.api_key}":
            return httpx.Response(401, json={"detail": "Unauthorized"})

        path = request.url.path
        users_path = httpx.URL(REMOTE_BASE_URL).path + "/Users"

        if request.method == "POST" and path == users_path:
            body = json.loads(request.content)
            email = body["userName"]
            if email in self.timeout_emails:
                raise httpx.ReadTimeout("timed out", request=request)
            if self.on_create is not None:
                self.on_create(email)
            if email in self.create_status:
                return httpx.Response(self.create_status[email], json={"detail": "rejected"})
            exists = email in self.phantom_conflicts or any(
                email in resource_emails(r) for r in self.resources.values()
            )
            if exists:
                return httpx.Response(self.conflict_status, json={"detail": "User already exists"})
            remote_id = self.add_remote(body)
            return httpx.Response(201, json=self.resources[remote_id])

        if request.method == "GET" and path == users_path:
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"detail": "listing failed"})
            resources = list(self.resources.values())
            start = int(request.url.params.get("startIndex", 1))
            end = None if self.page_size is None else start - 1 + self.page_size
            page = resources[start - 1 : end]
            return httpx.Response(
                200,
                json={
                    "totalResults": len(resources),
                    "startIndex": start,
                    "itemsPerPage": len(page),
                    "Resources": page,
                },
            )

        if request.method == "PUT" and path.startswith(users_path + "/"):
            remote_id = path.rsplit("/", 1)[1]
            if remote_id not in self.resources:
                return httpx.Response(404, json={"detail": "not found"})
            if self.update_status != 200:
                return httpx.Response(self.update_status, json={"detail": "update failed"})
            self.resources[remote_id] = {**json.loads(request.content), "id": remote_id}
            return httpx.Response(200, json=self.resources[remote_id])

        return httpx.Response(404, json={"detail": "no route"})


@pytest.fixture(autouse=True)
def reset_package_logging() -> Generator[None, None, None]:
    """Drop handlers added by configure_logging so streams do not leak between tests."""
    yield
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture(scope="session")
def signing_store(tmp_path_factory: pytest.TempPathFactory) -> CertificateStore:
    """Certificate store with a generated key pair, shared by the whole session."""
    cert_dir = tmp_path_factory.mktemp("signing")
    store = CertificateStore(cert_dir / "cert.pem", cert_dir / "key.pem", subject=TEST_SUBJECT)
    store.generate()
    return store


@pytest.fixture(scope="session")
def signing_credential(signing_store: CertificateStore) -> SigningCredential:
    return signing_store.load()


@pytest.fixture
def cert_store(tmp_path: Path) -> CertificateStore:
    """Empty certificate store in a temporary directory."""
    return CertificateStore(tmp_path / "certs" / "cert.pem", tmp_path / "certs" / "key.pem", TEST_SUBJECT)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    config = AppConfig()
    config.certificates.output_dir = tmp_path / "certs"
    config.scim.token = SCIM_TOKEN
    config.scim.api_key = SCIM_API_KEY
    config.scim.base_url = REMOTE_BASE_URL
    config.saml.acs_url = "https://sp.example.test/acs"
    config.saml.sp_entity_id = "urn:test:sp"
    return config


@pytest.fixture
def fake_scim() -> FakeSCIMService:
    return FakeSCIMService()


@pytest.fixture
def make_reconciler(fake_scim: FakeSCIMService) -> Callable[..., DirectoryReconciler]:
    """Build reconcilers talking to the fake remote service."""

    def factory(**kwargs) -> DirectoryReconciler:
        client = RemoteDirectoryClient(
            REMOTE_BASE_URL,
            SCIM_API_KEY,
            transport=httpx.MockTransport(fake_scim.handler),
        )
        return DirectoryReconciler(client, **kwargs)

    return factory


@pytest.fixture
def app(
    app_config: AppConfig,
    signing_store: CertificateStore,
    signing_credential: SigningCredential,
    make_reconciler: Callable[..., DirectoryReconciler],
) -> Generator[Flask, None, None]:
    """Create application for testing with a pre-generated signing credential."""
    app = create_app(
        app_config,
        credential_holder=CredentialHolder(signing_store, signing_credential),
        reconciler_factory=make_reconciler,
        overrides={"TESTING": True, "SECRET_KEY": "test-secret-key"},
    )
    yield app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


@pytest.fixture
def scim_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {SCIM_TOKEN}"}
