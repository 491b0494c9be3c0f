"""
auth/errors.py -- Structured error kinds for the credential subsystem.

Every failure the subsystem raises is a CredentialError subclass carrying an
ErrorKind. Callers branch on the class (except InvalidCredentials:) or on
.kind; they never parse messages.

context holds operator-facing detail (email, store client, timestamps). It
must never contain password material, plaintext or hashed. The HTTP boundary
renders only .kind, never .context.

NoCredentialSet subclasses InvalidCredentials on purpose: a handler written
for "wrong password" denies "no password set" identically, which is the
enumeration-safe default.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    DUPLICATE_EMAIL = "duplicate_email"
    NO_CREDENTIAL_SET = "no_credential_set"
    INVALID_CREDENTIALS = "invalid_credentials"
    HASHING_FAILURE = "hashing_failure"
    VERIFICATION_MISMATCH = "verification_mismatch"
    CONSISTENCY_MISMATCH = "consistency_mismatch"
    STORE_UNAVAILABLE = "store_unavailable"


_CRITICAL_KINDS = frozenset({ErrorKind.VERIFICATION_MISMATCH, ErrorKind.CONSISTENCY_MISMATCH})


class CredentialError(Exception):
    """Base class for all credential subsystem failures."""

    kind: ErrorKind = ErrorKind.INVALID_CREDENTIALS

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.context = context

    @property
    def is_critical(self) -> bool:
        """True for kinds that indicate systemic misconfiguration, not user error."""
        return self.kind in _CRITICAL_KINDS


class NotFound(CredentialError):
    kind = ErrorKind.NOT_FOUND


class DuplicateEmail(CredentialError):
    kind = ErrorKind.DUPLICATE_EMAIL


class InvalidCredentials(CredentialError):
    """Generic authentication denial. Carries no detail about why."""

    kind = ErrorKind.INVALID_CREDENTIALS


class NoCredentialSet(InvalidCredentials):
    """Identity exists but has no password credential (external-provider account)."""

    kind = ErrorKind.NO_CREDENTIAL_SET


class HashingFailure(CredentialError):
    kind = ErrorKind.HASHING_FAILURE


class VerificationMismatch(CredentialError):
    """A freshly written hash failed to verify on read-back."""

    kind = ErrorKind.VERIFICATION_MISMATCH


class ConsistencyMismatch(CredentialError):
    """Store clients expected to share one physical store disagree."""

    kind = ErrorKind.CONSISTENCY_MISMATCH

    def __init__(self, message: str = "", clients: tuple[str, ...] = (), **context: object) -> None:
        super().__init__(message, clients=clients, **context)
        self.clients = clients


class StoreUnavailable(CredentialError):
    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str = "", client: str = "", **context: object) -> None:
        super().__init__(message, client=client, **context)
        self.client = client
