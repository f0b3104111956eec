"""Read-only local user directory.

The directory is the source of truth for both SAML subject attributes and
SCIM resources. It is fixed at construction time and never mutated.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class DirectoryError(ValueError):
    """Raised when directory data is malformed or inconsistent."""


class Role(StrEnum):
    """Roles a directory user can hold."""

    ADMIN = "ADMIN"
    SUPERVISOR = "SUPERVISOR"
    REVIEWER = "REVIEWER"
    LABELER = "LABELER"


@dataclass(frozen=True)
class DirectoryUser:
    """A single user known to the IdP."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirectoryUser:
        """Create a user from a config mapping.

        Accepts both ``first_name`` and ``firstName`` style keys.
        """
        try:
            user_id = str(data["id"])
            email = str(data["email"])
            role = Role(str(data.get("role", Role.LABELER)).upper())
        except KeyError as e:
            raise DirectoryError(f"User entry is missing required field {e}") from None
        except ValueError:
            raise DirectoryError(
                f"User {data.get('email')!r} has unknown role {data.get('role')!r}"
            ) from None

        if not user_id or not email:
            raise DirectoryError("User id and email must be non-empty")

        return cls(
            id=user_id,
            email=email,
            first_name=str(data.get("first_name", data.get("firstName", ""))),
            last_name=str(data.get("last_name", data.get("lastName", ""))),
            role=role,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role.value,
        }


class Directory:
    """Immutable collection of users keyed by id and by email."""

    def __init__(self, users: Iterable[DirectoryUser]) -> None:
        self._users: tuple[DirectoryUser, ...] = tuple(users)
        self._by_id: dict[str, DirectoryUser] = {}
        self._by_email: dict[str, DirectoryUser] = {}

        for user in self._users:
            if user.id in self._by_id:
                raise DirectoryError(f"Duplicate user id: {user.id}")
            if user.email in self._by_email:
                raise DirectoryError(f"Duplicate user email: {user.email}")
            self._by_id[user.id] = user
            self._by_email[user.email] = user

    @classmethod
    def from_dicts(cls, entries: Iterable[dict[str, Any]]) -> Directory:
        return cls(DirectoryUser.from_dict(entry) for entry in entries)

    def all(self) -> list[DirectoryUser]:
        """Return every user in directory order."""
        return list(self._users)

    def find_by_id(self, user_id: str) -> DirectoryUser | None:
        return self._by_id.get(str(user_id))

    def find_by_email(self, email: str) -> DirectoryUser | None:
        """Look up a user by email. Matching is exact and case-sensitive."""
        return self._by_email.get(email)

    def __len__(self) -> int:
        return len(self._users)

    def __iter__(self) -> Iterator[DirectoryUser]:
        return iter(self._users)


DEFAULT_USERS: tuple[DirectoryUser, ...] = (
    DirectoryUser("1", "darwin+idp1@datasaur.ai", "Darwin", "One", Role.ADMIN),
    DirectoryUser("2", "darwin+idp2@datasaur.ai", "Darwin", "Two", Role.SUPERVISOR),
    DirectoryUser("3", "darwin+idp3@datasaur.ai", "Darwin", "Three", Role.REVIEWER),
    DirectoryUser("4", "darwin+idp4@datasaur.ai", "Darwin", "Four", Role.LABELER),
    DirectoryUser("5", "darwin+idp5@datasaur.ai", "Darwin", "Five", Role.LABELER),
)


def default_directory() -> Directory:
    """The built-in set of five test users."""
    return Directory(DEFAULT_USERS)


def build_directory(entries: list[dict[str, Any]] | None) -> Directory:
    """Build the directory from config entries, falling back to the built-in users."""
    if entries:
        return Directory.from_dicts(entries)
    return default_directory()
