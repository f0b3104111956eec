"""HTTP client for the remote SCIM service being provisioned."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from mockidp.core.logging import get_protocol_logger

if TYPE_CHECKING:
    from mockidp.core.config import SCIMSettings
    from mockidp.core.logging import ProtocolLogger

logger = logging.getLogger(__name__)


class SCIMError(Exception):
    """Base exception for SCIM errors."""


class RemoteCallFailed(SCIMError):
    """Raised when a remote SCIM call could not complete.

    Carries the HTTP status when the remote answered, or the transport
    error text when it did not (timeouts, refused connections).
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class RemoteResponse:
    """Status and decoded JSON body of a remote call."""

    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class RemoteDirectoryClient:
    """Minimal SCIM 2.0 client: create, list and replace Users.

    Every call carries the bearer token and a JSON content type, and is
    bounded by the configured timeout. Non-2xx responses are returned,
    not raised; only failures to get a response raise RemoteCallFailed.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 15.0,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
        protocol_logger: ProtocolLogger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        protocol_logger = protocol_logger or get_protocol_logger()
        # verify only applies to the default transport
        inner = transport or httpx.HTTPTransport(verify=verify)
        self._client = httpx.Client(
            transport=protocol_logger.create_transport(inner),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/scim+json, application/json",
            },
        )

    @classmethod
    def from_settings(
        cls, settings: SCIMSettings, transport: httpx.BaseTransport | None = None
    ) -> RemoteDirectoryClient:
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            timeout=settings.timeout,
            verify=settings.verify_tls,
            transport=transport,
        )

    def _request(
        self, method: str, path: str, json: Any = None, params: dict[str, Any] | None = None
    ) -> RemoteResponse:
        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            raise RemoteCallFailed(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteCallFailed(f"{method} {path} failed: {e}") from e

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        return RemoteResponse(status=response.status_code, body=body)

    def create_user(self, resource: dict[str, Any]) -> RemoteResponse:
        """POST {base}/Users"""
        return self._request("POST", "/Users", json=resource)

    def list_users(self, start_index: int = 1, count: int | None = None) -> RemoteResponse:
        """GET {base}/Users, one page starting at the 1-based ``start_index``."""
        params: dict[str, Any] = {"startIndex": start_index}
        if count is not None:
            params["count"] = count
        return self._request("GET", "/Users", params=params)

    def replace_user(self, remote_id: str, resource: dict[str, Any]) -> RemoteResponse:
        """PUT {base}/Users/{id}"""
        return self._request("PUT", f"/Users/{remote_id}", json=resource)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RemoteDirectoryClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
