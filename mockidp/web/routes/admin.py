"""Admin routes."""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint

from mockidp.web.routes import get_services

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def run_sync() -> dict[str, Any] | tuple[dict[str, Any], int]:
    """Reconcile the directory in-process and describe the outcome as JSON."""
    services = get_services()
    logger.info("Starting manual user sync")
    try:
        reconciler = services.reconciler_factory()
    except Exception as e:
        logger.exception("Could not set up user sync")
        return {"success": False, "message": f"Error during user sync: {e}"}, 500

    try:
        report = reconciler.reconcile(services.directory.all())
    finally:
        reconciler.close()

    return {
        "success": True,
        "message": report.summary(),
        "results": report.to_dict(),
    }


@admin_bp.route("/sync-users", methods=["POST"])
def sync_users() -> dict[str, Any] | tuple[dict[str, Any], int]:
    """Trigger a directory sync without a SCIM token."""
    return run_sync()
