"""Flask application factory."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from flask import Flask

from mockidp.core.config import AppConfig, load_config
from mockidp.core.crypto.certs import CertificateStore, CredentialHolder
from mockidp.core.saml.issuer import AssertionIssuer
from mockidp.directory import Directory, build_directory
from mockidp.scim.reconcile import DirectoryReconciler

logger = logging.getLogger(__name__)

ReconcilerFactory = Callable[[], DirectoryReconciler]


@dataclass
class IdPServices:
    """Components shared by the request handlers, built once per app."""

    config: AppConfig
    directory: Directory
    credentials: CredentialHolder
    issuer: AssertionIssuer
    reconciler_factory: ReconcilerFactory


def build_issuer(app_config: AppConfig) -> AssertionIssuer:
    saml = app_config.saml
    return AssertionIssuer(
        idp_entity_id=saml.idp_entity_id,
        sp_entity_id=saml.sp_entity_id,
        sign_assertion=saml.sign_assertion,
        sign_response=saml.sign_response,
        validity=timedelta(seconds=saml.validity_seconds),
    )


def create_app(
    app_config: AppConfig | None = None,
    *,
    directory: Directory | None = None,
    credential_holder: CredentialHolder | None = None,
    reconciler_factory: ReconcilerFactory | None = None,
    overrides: dict | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        app_config: Application configuration. Loads from file/env if not provided.
        directory: User directory; built from config when omitted.
        credential_holder: Signing credential holder; the credential is
            loaded (or generated) lazily on first use when omitted.
        reconciler_factory: Builds a reconciler per sync request.
        overrides: Extra Flask config values (e.g. ``TESTING``).

    Returns:
        Configured Flask application instance.
    """
    if app_config is None:
        app_config = load_config()

    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY=app_config.server.secret_key or secrets.token_hex(32),
    )
    if overrides:
        app.config.from_mapping(overrides)

    if credential_holder is None:
        credential_holder = CredentialHolder(CertificateStore.from_settings(app_config.certificates))

    if reconciler_factory is None:
        scim_settings = app_config.scim

        def reconciler_factory() -> DirectoryReconciler:
            return DirectoryReconciler.from_settings(scim_settings)

    app.extensions["mockidp"] = IdPServices(
        config=app_config,
        directory=directory if directory is not None else build_directory(app_config.users),
        credentials=credential_holder,
        issuer=build_issuer(app_config),
        reconciler_factory=reconciler_factory,
    )

    from mockidp.web import routes

    routes.init_app(app)

    return app


def run_server(
    app_config: AppConfig | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the Flask development server.

    The signing credential is loaded (or generated) before the server
    starts listening so certificate problems surface immediately.

    Args:
        app_config: Application configuration. Loads from file/env if not provided.
        host: Override host from config.
        port: Override port from config.
    """
    if app_config is None:
        app_config = load_config()

    server_host = host or app_config.server.host
    server_port = port or app_config.server.port

    store = CertificateStore.from_settings(app_config.certificates)
    holder = CredentialHolder(store, store.ensure())
    logger.info(f"Signing certificate loaded from {store.cert_path}")

    app = create_app(app_config, credential_holder=holder)
    app.debug = app_config.server.debug

    base_url = f"http://{server_host}:{server_port}"
    print("Starting mock IdP server...")
    print(f"  URL: {base_url}")
    print(f"  SAML metadata: {base_url}/saml/metadata")
    print(f"  SCIM endpoint: {base_url}/scim/v2")
    print("")

    app.run(host=server_host, port=server_port)
