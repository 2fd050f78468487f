"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, identity service and routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Coarse authorization claim attached to every principal."""

    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class Account:
    """The canonical identity record.

    An account is reachable through a local password, a federated identity,
    or both. password_hash is None for accounts created purely through
    federated login; federated_id is None until the first federated login
    links one. The store rejects a record that carries neither.

    email_verified starts False for local registrations and is only flipped
    by IdentityService.federated_login() -- tokens are never issued while it
    is False.

    id is None before the record is written to the database.
    """

    email: str
    role: Role = Role.USER
    id: int | None = None
    password_hash: str | None = None
    federated_id: str | None = None  # identity provider's stable subject id
    name: str | None = None
    email_verified: bool = False
    created_at: str | None = None  # ISO 8601, set by store on insert
    updated_at: str | None = None  # ISO 8601, set by store on every save


@dataclass(frozen=True)
class Principal:
    """The authenticated identity of a single request.

    Built by the authentication gate from a validated token plus a fresh
    store lookup, so role changes apply on the next request without
    re-issuing the token.
    """

    account_id: int
    email: str
    role: Role


class AuthErrorKind(str, Enum):
    """Failure taxonomy shared by the identity service and the HTTP layer.

    INVALID_CREDENTIALS deliberately covers both "unknown email" and "wrong
    password" so the outside world cannot discover which accounts exist.
    """

    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    NOT_FOUND = "not_found"
    UNAUTHENTICATED = "unauthenticated"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class AuthOutcome:
    """Result of an identity operation: an account (and maybe a token) or an error kind."""

    account: Account | None = None
    token: str | None = None
    error: AuthErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, kind: AuthErrorKind) -> AuthOutcome:
        return cls(error=kind)
