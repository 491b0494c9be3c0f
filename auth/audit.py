"""
auth/audit.py -- Cross-client consistency check for credential stores.

The failure this catches: the authentication pathway and the administrative
pathway each build their own store client from their own configuration, and
one of them quietly points at a different database. Everything "works" in
the admin tooling while production logins fail, or the reverse.

ConsistencyAuditor runs the same lookup through every configured client and
compares presence, hash presence and the exact hash string. Any divergence is
a ConsistencyMismatch naming the clients involved, logged as CRITICAL.

Which clients are named:
  Observations are grouped by what they saw. If one group is strictly larger
  than every other, it is taken as the reference and the clients outside it
  are named. Otherwise (e.g. two clients that disagree) every client is named.

Hashes are never logged in full -- only a short SHA-256 fingerprint.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from auth.errors import ConsistencyMismatch, StoreUnavailable
from auth.hashing import PasswordHasher
from auth.models import ClientObservation, ConsistencyReport
from auth.store import CredentialStore

logger = logging.getLogger("credguard.audit")


def hash_fingerprint(password_hash: str | None) -> str:
    """Short, non-reversible tag for a hash so logs can show whether two match."""
    if not password_hash:
        return "-"
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:12]


class ConsistencyAuditor:
    """Compare what several store clients report for the same email.

    Usage:
        auditor = ConsistencyAuditor([auth_store, admin_store], hasher)
        report = auditor.audit("alice@example.com")
        report.consistent
    """

    def __init__(self, stores: Iterable[CredentialStore], hasher: PasswordHasher) -> None:
        self.stores = list(stores)
        if len(self.stores) < 2:
            raise ValueError("ConsistencyAuditor needs at least two store clients")
        names = [s.name for s in self.stores]
        if len(set(names)) != len(names):
            raise ValueError(f"store client names must be unique, got {names!r}")
        self.hasher = hasher

    def audit(self, email: str, password: str | None = None) -> ConsistencyReport:
        """Look email up through every client and report whether they agree.

        If password is given, each observation also records whether that
        client's stored hash accepts it -- which environment would let the
        user in.
        """
        observations = tuple(self._observe(store, email, password) for store in self.stores)
        mismatched = _mismatched_clients(observations)
        report = ConsistencyReport(
            email=email,
            observations=observations,
            mismatched_clients=mismatched,
            checked_at=datetime.now(timezone.utc).isoformat(),
        )
        if report.consistent:
            logger.info("Audit %s: consistent across %s", email, ", ".join(o.client for o in observations))
        else:
            logger.critical(
                "Audit %s: ConsistencyMismatch between %s at %s -- %s",
                email,
                ", ".join(mismatched),
                report.checked_at,
                "; ".join(_describe(o) for o in observations),
            )
        return report

    def assert_consistent(self, email: str, password: str | None = None) -> ConsistencyReport:
        """audit(), raising ConsistencyMismatch instead of returning a divergent report."""
        report = self.audit(email, password)
        if not report.consistent:
            raise ConsistencyMismatch(
                f"store clients disagree about {email!r}",
                clients=report.mismatched_clients,
                email=email,
                checked_at=report.checked_at,
            )
        return report

    def _observe(self, store: CredentialStore, email: str, password: str | None) -> ClientObservation:
        try:
            identity = store.find_by_email(email)
        except StoreUnavailable as exc:
            return ClientObservation(client=store.name, reachable=False, error=exc.kind.value)
        if identity is None:
            return ClientObservation(client=store.name, reachable=True)
        matches = None
        if password is not None and identity.has_credential:
            matches = self.hasher.verify(password, identity.password_hash)
        return ClientObservation(
            client=store.name,
            reachable=True,
            present=True,
            has_hash=identity.has_credential,
            password_hash=identity.password_hash,
            password_matches=matches,
        )


def _mismatched_clients(observations: tuple[ClientObservation, ...]) -> tuple[str, ...]:
    groups: dict[tuple, list[str]] = {}
    for obs in observations:
        groups.setdefault(obs.signature, []).append(obs.client)
    if len(groups) == 1:
        return ()
    sizes = sorted((len(members) for members in groups.values()), reverse=True)
    if sizes[0] == sizes[1]:
        return tuple(obs.client for obs in observations)
    reference = max(groups.values(), key=len)
    return tuple(obs.client for obs in observations if obs.client not in reference)


def _describe(obs: ClientObservation) -> str:
    if not obs.reachable:
        return f"{obs.client}=unreachable"
    if not obs.present:
        return f"{obs.client}=absent"
    return f"{obs.client}=present hash:{hash_fingerprint(obs.password_hash)}"
