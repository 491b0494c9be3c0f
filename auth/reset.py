"""
auth/reset.py -- Provision and rotate password credentials, verifying every write.

provision() is "reset to known state": any existing identity with the email
is fully deleted and recreated with a fresh hash. Recovery tooling and test
fixtures rely on it being idempotent -- two calls in a row leave exactly one
identity whose hash verifies only against the second password.

rotate() changes only password_hash (and updated_at) on an existing row, then
re-reads the row and re-verifies the new password against what the store
actually holds. A failed round trip raises VerificationMismatch: that is a
storage or encoding defect, never a user error, and is logged as CRITICAL.

Neither operation is atomic with respect to concurrent logins. A login racing
a rotation sees either the old or the new hash.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth.errors import DuplicateEmail, NotFound, VerificationMismatch
from auth.hashing import PasswordHasher
from auth.models import Identity, Role
from auth.store import CredentialStore

logger = logging.getLogger("credguard.reset")


class CredentialResetService:
    def __init__(self, store: CredentialStore, hasher: PasswordHasher, default_role: str = Role.FAN.value) -> None:
        self.store = store
        self.hasher = hasher
        self.default_role = default_role

    def provision(self, email: str, password: str, **fields) -> Identity:
        """Delete any identity with this email, then create it afresh.

        fields: display_name, avatar_ref, role, email_verified_at. role
        defaults to the service's provisioning default.

        Raises StoreUnavailable if the store cannot be reached, HashingFailure
        if the password cannot be hashed (checked before anything is deleted).
        """
        password_hash = self.hasher.hash(password)
        fields.setdefault("role", self.default_role)

        existing = self.store.find_by_email(email)
        if existing is not None:
            try:
                self.store.delete(existing.id)
            except NotFound:
                # Someone else removed it first; the end state is the same.
                pass
            logger.info("Provision: removed prior identity %s for %s", existing.id, email)

        identity = self.store.create(email=email, password_hash=password_hash, **fields)
        logger.info("Provision: created identity %s for %s (store=%s)", identity.id, email, self.store.name)
        return identity

    def rotate(self, identity_id: str, new_password: str) -> Identity:
        """Replace an identity's password hash and prove the write round-trips.

        Raises NotFound if the identity does not exist, VerificationMismatch
        if the stored hash does not verify against new_password on read-back.
        """
        new_hash = self.hasher.hash(new_password)
        self.store.update(identity_id, password_hash=new_hash)

        stored = self.store.get_by_id(identity_id)
        if stored is None:
            raise NotFound(f"identity {identity_id!r} vanished after rotation", identity_id=identity_id)

        if stored.password_hash != new_hash or not self.hasher.verify(new_password, stored.password_hash):
            checked_at = datetime.now(timezone.utc).isoformat()
            logger.critical(
                "Rotation round trip failed for identity %s on store %s at %s",
                identity_id,
                self.store.name,
                checked_at,
            )
            raise VerificationMismatch(
                "stored password hash does not verify after rotation",
                identity_id=identity_id,
                client=self.store.name,
                checked_at=checked_at,
            )

        logger.info("Rotated credential for identity %s (store=%s)", identity_id, self.store.name)
        return stored

    def ensure_external_identity(self, email: str, **fields) -> Identity:
        """Find or create an identity with no password credential.

        Used on first login through an external provider. An existing identity
        is returned untouched, whether or not it has a password.
        """
        existing = self.store.find_by_email(email)
        if existing is not None:
            return existing
        fields.setdefault("role", self.default_role)
        try:
            identity = self.store.create(email=email, password_hash=None, **fields)
        except DuplicateEmail:
            # Lost a race with a concurrent first login.
            existing = self.store.find_by_email(email)
            if existing is None:
                raise
            return existing
        logger.info("Provisioned external identity %s for %s", identity.id, email)
        return identity

    def mark_email_verified(self, identity_id: str) -> Identity:
        """Stamp email_verified_at with the current UTC time."""
        return self.store.update(identity_id, email_verified_at=datetime.now(timezone.utc).isoformat())
