"""
auth/models.py -- Domain dataclasses for credential entities.

Pattern: Data class (pure data container, zero logic beyond projections).
Stores and services do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    FAN = "FAN"
    CREATOR = "CREATOR"
    ADMIN = "ADMIN"


@dataclass
class Identity:
    """One account record, keyed by email.

    email is case-sensitive as stored; lookups match it exactly.

    password_hash is None for identities provisioned through an external
    provider. Such an identity can never authenticate by password -- not even
    with an empty string.

    Timestamps are ISO 8601 UTC strings, the same representation the store
    writes. updated_at >= created_at always holds.
    """

    email: str
    id: str | None = None
    password_hash: str | None = field(default=None, repr=False)
    display_name: str | None = None
    avatar_ref: str | None = None
    role: str = Role.FAN.value
    email_verified_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def has_credential(self) -> bool:
        return bool(self.password_hash)

    def projection(self) -> IdentityProjection:
        """Return the caller-safe view. Never includes the password hash."""
        return IdentityProjection(
            id=self.id or "",
            email=self.email,
            name=self.display_name,
            image=self.avatar_ref,
            role=self.role,
        )


@dataclass(frozen=True)
class IdentityProjection:
    """What the authorize callback hands back on success.

    Field names follow the identity-provider callback contract
    (name/image rather than display_name/avatar_ref).
    """

    id: str
    email: str
    name: str | None
    image: str | None
    role: str


@dataclass(frozen=True)
class ClientObservation:
    """What one store client saw for one email during an audit.

    password_matches is None when the audit ran without a password or the
    identity has no hash to check against.
    """

    client: str
    reachable: bool
    present: bool = False
    has_hash: bool = False
    password_hash: str | None = field(default=None, repr=False)
    password_matches: bool | None = None
    error: str | None = None

    @property
    def signature(self) -> tuple:
        """The comparable part of the observation. Equal signatures = agreement."""
        return (self.reachable, self.present, self.has_hash, self.password_hash, self.password_matches)


@dataclass(frozen=True)
class ConsistencyReport:
    """Result of ConsistencyAuditor.audit() for one email.

    mismatched_clients is empty when consistent. On divergence it names the
    clients outside the majority view, or every client when there is no
    strict majority, in configuration order.
    """

    email: str
    observations: tuple[ClientObservation, ...]
    mismatched_clients: tuple[str, ...] = ()
    checked_at: str = ""

    @property
    def consistent(self) -> bool:
        return not self.mismatched_clients

    @property
    def status(self) -> str:
        return "Consistent" if self.consistent else "ConsistencyMismatch"
