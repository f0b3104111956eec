"""Local SCIM 2.0 endpoints serving the directory."""

from __future__ import annotations

import hmac
import logging
from typing import Any

from flask import Blueprint, request

from mockidp.scim.schema import error_response, list_response, to_scim_resource
from mockidp.web.routes import get_services
from mockidp.web.routes.admin import run_sync

logger = logging.getLogger(__name__)

scim_bp = Blueprint("scim", __name__, url_prefix="/scim/v2")


def scim_error(detail: str, status: int) -> tuple[dict[str, Any], int]:
    return error_response(detail, status), status


def _positive_int(name: str, default: int) -> int:
    value = request.args.get(name, type=int)
    if value is None or value < 1:
        return default
    return value


@scim_bp.before_request
def check_token() -> tuple[dict[str, Any], int] | None:
    """Require ``Authorization: Bearer <scim.token>`` on every SCIM call."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return scim_error("Unauthorized", 401)

    expected = get_services().config.scim.token
    token = auth_header.split(" ", 1)[1].strip()
    if not expected or not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning(f"Rejected SCIM request to {request.path}: invalid token")
        return scim_error("Invalid token", 401)
    return None


@scim_bp.route("/Users", methods=["GET"])
def list_users() -> dict[str, Any]:
    users = get_services().directory.all()
    start_index = _positive_int("startIndex", 1)
    count = _positive_int("count", len(users))
    page = users[start_index - 1 : start_index - 1 + count]
    return list_response(
        [to_scim_resource(u, include_id=True) for u in page],
        start_index=start_index,
        count=len(page),
        total=len(users),
    )


@scim_bp.route("/Users/<user_id>", methods=["GET"])
def get_user(user_id: str) -> dict[str, Any] | tuple[dict[str, Any], int]:
    user = get_services().directory.find_by_id(user_id)
    if user is None:
        return scim_error("User not found", 404)
    return to_scim_resource(user, include_id=True)


@scim_bp.route("/Users/.search", methods=["POST"])
def search_users() -> dict[str, Any]:
    users = get_services().directory.all()
    return list_response([to_scim_resource(u, include_id=True) for u in users])


@scim_bp.route("/sync", methods=["POST"])
def sync() -> dict[str, Any] | tuple[dict[str, Any], int]:
    """Push the directory to the remote SCIM service."""
    return run_sync()
