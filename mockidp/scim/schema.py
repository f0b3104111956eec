"""SCIM 2.0 resource representations of directory users."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mockidp.directory import DirectoryUser

SCHEMA_USER = "urn:ietf:params:scim:schemas:core:2.0:User"
SCHEMA_LIST_RESPONSE = "urn:ietf:params:scim:api:messages:2.0:ListResponse"
SCHEMA_ERROR = "urn:ietf:params:scim:api:messages:2.0:Error"


def to_scim_resource(user: DirectoryUser, include_id: bool = False) -> dict[str, Any]:
    """Map a directory user to a SCIM User resource.

    The remote service assigns its own ids, so ``id`` is only included
    when serving the local directory.
    """
    resource: dict[str, Any] = {"schemas": [SCHEMA_USER]}
    if include_id:
        resource["id"] = user.id
    resource.update(
        {
            "userName": user.email,
            "name": {
                "givenName": user.first_name,
                "familyName": user.last_name,
            },
            "emails": [{"primary": True, "value": user.email, "type": "work"}],
            "active": True,
            "groups": [{"value": str(user.role), "display": str(user.role)}],
        }
    )
    return resource


def resource_emails(resource: dict[str, Any]) -> list[str]:
    """Email values of a SCIM resource, tolerating missing or malformed entries."""
    emails = resource.get("emails") or []
    return [e["value"] for e in emails if isinstance(e, dict) and isinstance(e.get("value"), str)]


def list_response(
    resources: Sequence[dict[str, Any]],
    start_index: int = 1,
    count: int | None = None,
    total: int | None = None,
) -> dict[str, Any]:
    return {
        "schemas": [SCHEMA_LIST_RESPONSE],
        "totalResults": len(resources) if total is None else total,
        "startIndex": start_index,
        "itemsPerPage": len(resources) if count is None else count,
        "Resources": list(resources),
    }


def error_response(detail: str, status: int) -> dict[str, Any]:
    return {
        "schemas": [SCHEMA_ERROR],
        "detail": detail,
        "status": str(status),
    }
