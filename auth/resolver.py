"""
auth/resolver.py -- The authenticate(email, password) state machine.

This is what the identity-provider "authorize" callback calls. States:

  Start -> Lookup -> CheckCredentialPresence -> VerifyPassword -> Authenticated

  Lookup:                  no identity for email      -> InvalidCredentials
  CheckCredentialPresence: identity has no hash       -> NoCredentialSet
  VerifyPassword:          hash does not match        -> InvalidCredentials
                           match                      -> IdentityProjection

Enumeration safety:
  "no such email", "no password set" and "wrong password" are
  indistinguishable to the caller. NoCredentialSet is re-raised as a plain
  InvalidCredentials unless the caller explicitly passes reveal_reason=True
  (internal tooling only -- the HTTP boundary never does). The distinction is
  kept on the diagnostic log channel.

Timing equalization:
  bcrypt runs exactly once per attempt whatever the outcome. Unknown emails
  and credential-less identities are checked against the hasher's dummy hash
  so response time does not reveal whether an email is registered.

StoreUnavailable is never collapsed into InvalidCredentials: an outage must
not look like a wrong password, to the operator or to the caller.

Hashing is CPU-bound (tens of milliseconds at production cost). Call
authenticate() from a worker thread, never inline on an event loop.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.errors import InvalidCredentials, NoCredentialSet, NotFound, StoreUnavailable
from auth.hashing import PasswordHasher
from auth.models import IdentityProjection
from auth.store import CredentialStore

logger = logging.getLogger("credguard.auth")
# Verbose failure detail lives here and only here.
diagnostics = logging.getLogger("credguard.diagnostics")


class AuthorizationResolver:
    def __init__(self, store: CredentialStore, hasher: PasswordHasher, rehash_on_login: bool = True) -> None:
        self.store = store
        self.hasher = hasher
        self.rehash_on_login = rehash_on_login

    def authenticate(self, email: str, password: str, *, reveal_reason: bool = False) -> IdentityProjection:
        """Authenticate an email/password pair.

        Returns the identity projection on success. Raises InvalidCredentials
        on any credential failure and StoreUnavailable if the store cannot be
        reached. With reveal_reason=True, a credential-less identity raises
        NoCredentialSet instead.
        """
        if not email or not password:
            self._burn()
            diagnostics.info("authenticate: missing email or password (store=%s)", self.store.name)
            raise InvalidCredentials()

        try:
            identity = self.store.find_by_email(email)
        except StoreUnavailable:
            diagnostics.error("authenticate: store %s unavailable during lookup for %s", self.store.name, email)
            raise

        if identity is None:
            self._burn()
            diagnostics.info("authenticate: no identity for %s (store=%s)", email, self.store.name)
            raise InvalidCredentials()

        if not identity.has_credential:
            self._burn()
            diagnostics.info("authenticate: identity %s has no password credential", identity.id)
            if reveal_reason:
                raise NoCredentialSet(identity_id=identity.id, email=email)
            raise InvalidCredentials()

        if not self.hasher.verify(password, identity.password_hash):
            diagnostics.info("authenticate: wrong password for identity %s", identity.id)
            raise InvalidCredentials()

        if self.rehash_on_login and self.hasher.needs_rehash(identity.password_hash):
            self._upgrade_hash(identity.id, password)

        logger.info("Authenticated identity %s (role=%s)", identity.id, identity.role)
        return identity.projection()

    def _burn(self) -> None:
        """Spend one bcrypt verification so failure timing matches the real check."""
        self.hasher.verify("credguard-timing-equalizer", self.hasher.dummy_hash)

    def _upgrade_hash(self, identity_id: str, password: str) -> None:
        """Re-hash a low-cost credential at the configured cost.

        Best effort: the user is already authenticated, so an outage here is
        logged and the login still succeeds.
        """
        try:
            self.store.update(identity_id, password_hash=self.hasher.hash(password))
        except (StoreUnavailable, NotFound) as exc:
            logger.warning("Could not upgrade hash cost for identity %s: %s", identity_id, exc.kind.value)
        else:
            logger.info("Upgraded password hash cost for identity %s to %d", identity_id, self.hasher.rounds)
