"""Web routes for mockidp."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from flask import Blueprint, Flask, current_app, render_template, request

if TYPE_CHECKING:
    from mockidp.app import IdPServices

# Get the directories relative to this package
_web_dir = Path(__file__).parent.parent
_templates_dir = _web_dir / "templates"

main_bp = Blueprint(
    "main",
    __name__,
    template_folder=str(_templates_dir),
)


def get_services() -> IdPServices:
    """Components registered on the current app by ``create_app``."""
    return current_app.extensions["mockidp"]


def get_base_url() -> str:
    """Base URL as seen by the client, honouring proxy headers (e.g. ngrok)."""
    scheme = request.headers.get("X-Forwarded-Proto", request.scheme)
    host = request.headers.get("X-Forwarded-Host", request.host)
    return f"{scheme}://{host}"


@main_bp.route("/")
def index() -> str:
    """Render the home page with links to the IdP endpoints."""
    return render_template("home.html", base_url=get_base_url())


@main_bp.route("/health")
def health() -> dict[str, str]:
    """Health check endpoint (unauthenticated)."""
    return {"status": "healthy"}


def init_app(app: Flask) -> None:
    """Register blueprints with the Flask app."""
    from mockidp.web.routes.admin import admin_bp
    from mockidp.web.routes.saml import saml_bp
    from mockidp.web.routes.scim import scim_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(saml_bp)
    app.register_blueprint(scim_bp)
    app.register_blueprint(admin_bp)
