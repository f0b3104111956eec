"""Directory reconciliation against a remote SCIM service.

For each local user: try to create the remote resource; if the remote
reports a conflict, find the existing resource by email in the remote
listing and replace it. Users are processed independently, so one
failure never aborts the batch, and nothing is retried.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from mockidp.directory import DirectoryUser
from mockidp.scim.client import RemoteCallFailed, RemoteDirectoryClient, RemoteResponse
from mockidp.scim.schema import resource_emails, to_scim_resource

if TYPE_CHECKING:
    import httpx

    from mockidp.core.config import SCIMSettings

logger = logging.getLogger(__name__)

ConflictPredicate = Callable[[RemoteResponse], bool]

CONFLICT_WITHOUT_MATCH = "User appears to exist but couldn't be found in listing"


def status_conflict(statuses: Iterable[int] = (409,)) -> ConflictPredicate:
    """Build a predicate treating the given HTTP statuses as "already exists"."""
    conflict_statuses = frozenset(statuses)

    def is_conflict(response: RemoteResponse) -> bool:
        return response.status in conflict_statuses

    return is_conflict


class SyncAction(StrEnum):
    """Outcome of reconciling one user."""

    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class UserSyncResult:
    email: str
    action: SyncAction
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.action != SyncAction.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {"email": self.email, "action": self.action.value, "reason": self.reason}


@dataclass
class SyncReport:
    """Summary of a reconciliation batch.

    ``failures`` holds one ``"email: reason"`` entry per failed user, in
    directory order. Users skipped because of cancellation are counted in
    ``skipped``, never in ``failed``.
    """

    success: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)
    results: list[UserSyncResult] = field(default_factory=list)
    cancelled: bool = False
    skipped: int = 0

    @property
    def attempted(self) -> int:
        return self.success + self.failed

    def add(self, result: UserSyncResult) -> None:
        self.results.append(result)
        if result.ok:
            self.success += 1
        else:
            self.failed += 1
            self.failures.append(f"{result.email}: {result.reason or 'Unknown error'}")

    def summary(self) -> str:
        text = f"User sync completed: {self.success} successful, {self.failed} failed"
        if self.cancelled:
            text += f" (cancelled, {self.skipped} not attempted)"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "failures": list(self.failures),
            "cancelled": self.cancelled,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
        }


def find_remote_id(listing: Any, email: str) -> str | None:
    """Find the id of the remote resource whose emails contain ``email``."""
    if not isinstance(listing, dict):
        return None
    for resource in listing.get("Resources") or []:
        if not isinstance(resource, dict):
            continue
        if email in resource_emails(resource) and resource.get("id"):
            return str(resource["id"])
    return None


def next_page_start(listing: Any, start_index: int) -> int | None:
    """Return the ``startIndex`` of the page after ``listing``, or None on the last page.

    A listing without ``totalResults`` or with an empty page is treated as
    complete.
    """
    if not isinstance(listing, dict):
        return None
    resources = listing.get("Resources")
    total = listing.get("totalResults")
    if not isinstance(resources, list) or not resources or not isinstance(total, int):
        return None
    following = start_index + len(resources)
    return following if following <= total else None


class DirectoryReconciler:
    """Mirrors directory users into a remote SCIM service.

    Args:
        client: Remote SCIM client.
        is_conflict: Decides whether a failed create means the resource
            already exists. Defaults to HTTP 409.
        max_workers: Users reconciled concurrently; 1 means sequential.
    """

    def __init__(
        self,
        client: RemoteDirectoryClient,
        is_conflict: ConflictPredicate | None = None,
        max_workers: int = 1,
    ) -> None:
        self.client = client
        self.is_conflict = is_conflict or status_conflict()
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_settings(
        cls, settings: SCIMSettings, transport: httpx.BaseTransport | None = None
    ) -> DirectoryReconciler:
        """Build a reconciler (and its remote client) from the scim config section."""
        return cls(
            RemoteDirectoryClient.from_settings(settings, transport=transport),
            is_conflict=status_conflict(settings.conflict_statuses),
            max_workers=settings.max_workers,
        )

    def close(self) -> None:
        self.client.close()

    def sync_user(self, user: DirectoryUser) -> UserSyncResult:
        """Create or update one user's remote resource."""
        resource = to_scim_resource(user)

        def failed(reason: str) -> UserSyncResult:
            logger.warning(f"Sync failed for {user.email}: {reason}")
            return UserSyncResult(user.email, SyncAction.FAILED, reason)

        try:
            logger.debug(f"Attempting to create user {user.email}")
            created = self.client.create_user(resource)
            if created.ok:
                logger.info(f"Created remote user {user.email}")
                return UserSyncResult(user.email, SyncAction.CREATED)

            if not self.is_conflict(created):
                return failed(f"Creation failed with status: {created.status}")

            logger.debug(f"User {user.email} already exists (status {created.status}); looking it up")
            remote_id = None
            start_index: int | None = 1
            while start_index is not None:
                listing = self.client.list_users(start_index=start_index)
                if not listing.ok:
                    return failed(f"User listing failed with status: {listing.status}")
                remote_id = find_remote_id(listing.body, user.email)
                if remote_id is not None:
                    break
                start_index = next_page_start(listing.body, start_index)

            if remote_id is None:
                return failed(CONFLICT_WITHOUT_MATCH)

            updated = self.client.replace_user(remote_id, resource)
            if not updated.ok:
                return failed(f"Update failed with status: {updated.status}")

            logger.info(f"Updated remote user {user.email} (id {remote_id})")
            return UserSyncResult(user.email, SyncAction.UPDATED)

        except RemoteCallFailed as e:
            return failed(str(e))

    def _attempt(
        self, user: DirectoryUser, cancel_event: threading.Event | None
    ) -> UserSyncResult | None:
        if cancel_event is not None and cancel_event.is_set():
            return None
        try:
            return self.sync_user(user)
        except Exception as e:
            logger.exception(f"Unexpected error syncing {user.email}")
            return UserSyncResult(user.email, SyncAction.FAILED, f"Unexpected error: {e}")

    def reconcile(
        self,
        users: Sequence[DirectoryUser],
        cancel_event: threading.Event | None = None,
    ) -> SyncReport:
        """Reconcile every user against the remote service.

        Args:
            users: Local users, in the order failures should be reported.
            cancel_event: When set, users not yet started are skipped.

        Returns:
            SyncReport for the batch.
        """
        users = list(users)
        logger.info(f"Starting sync of {len(users)} users (workers={self.max_workers})")

        outcomes: list[UserSyncResult | None]
        if self.max_workers == 1:
            outcomes = []
            for user in users:
                outcome = self._attempt(user, cancel_event)
                if outcome is None:
                    break
                outcomes.append(outcome)
            outcomes.extend([None] * (len(users) - len(outcomes)))
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(self._attempt, user, cancel_event) for user in users]
                # Collected in submission order so failures follow directory order
                outcomes = [future.result() for future in futures]

        report = SyncReport()
        for outcome in outcomes:
            if outcome is None:
                report.skipped += 1
            else:
                report.add(outcome)
        report.cancelled = report.skipped > 0

        if report.cancelled:
            logger.warning(report.summary())
        else:
            logger.info(report.summary())
        return report
