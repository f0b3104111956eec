"""SCIM provisioning: resource mapping, remote client and reconciliation."""

from mockidp.scim.client import RemoteCallFailed, RemoteDirectoryClient, RemoteResponse, SCIMError
from mockidp.scim.reconcile import (
    DirectoryReconciler,
    SyncAction,
    SyncReport,
    UserSyncResult,
    status_conflict,
)
from mockidp.scim.schema import error_response, list_response, to_scim_resource

__all__ = [
    "DirectoryReconciler",
    "RemoteCallFailed",
    "RemoteDirectoryClient",
    "RemoteResponse",
    "SCIMError",
    "SyncAction",
    "SyncReport",
    "UserSyncResult",
    "error_response",
    "list_response",
    "status_conflict",
    "to_scim_resource",
]
