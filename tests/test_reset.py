"""Unit tests for auth/reset.py -- CredentialResetService.

Covers:
- provision creates with default or given role and a fresh hash
- provision idempotence: two calls leave one identity, second password wins
- provision is a full delete + recreate (new id, old fields gone)
- provision surfaces StoreUnavailable; a bad password is rejected before any delete
- rotate round trip: new password verifies, prior one does not, other fields untouched
- rotate raises NotFound for a missing id, VerificationMismatch when the write does not stick
- ensure_external_identity and mark_email_verified
"""

from __future__ import annotations

import logging

import pytest

from auth.errors import HashingFailure, NotFound, StoreUnavailable, VerificationMismatch
from auth.hashing import PasswordHasher
from auth.models import Identity
from auth.reset import CredentialResetService
from auth.store import CredentialStore


class TestProvision:
    def test_provision_creates_identity(self, reset_service: CredentialResetService, hasher: PasswordHasher) -> None:
        identity = reset_service.provision("alice@example.com", "Secret123!", display_name="Alice")
        assert identity.role == "FAN"
        assert identity.display_name == "Alice"
        assert hasher.verify("Secret123!", identity.password_hash)

    def test_provision_honours_role(self, reset_service: CredentialResetService) -> None:
        assert reset_service.provision("boss@example.com", "pw", role="ADMIN").role == "ADMIN"

    def test_provision_uses_service_default_role(self, store: CredentialStore, hasher: PasswordHasher) -> None:
        service = CredentialResetService(store, hasher, default_role="CREATOR")
        assert service.provision("maker@example.com", "pw").role == "CREATOR"

    def test_provision_is_idempotent(
        self, reset_service: CredentialResetService, store: CredentialStore, hasher: PasswordHasher
    ) -> None:
        reset_service.provision("alice@example.com", "first-password")
        reset_service.provision("alice@example.com", "second-password")
        matches = [i for i in store.list_identities() if i.email == "alice@example.com"]
        assert len(matches) == 1
        assert hasher.verify("second-password", matches[0].password_hash)
        assert not hasher.verify("first-password", matches[0].password_hash)

    def test_provision_fully_replaces_prior_row(self, reset_service: CredentialResetService) -> None:
        first = reset_service.provision("alice@example.com", "pw", display_name="Old Name", avatar_ref="old.png")
        second = reset_service.provision("alice@example.com", "pw")
        assert second.id != first.id
        assert second.display_name is None
        assert second.avatar_ref is None

    def test_provision_store_unavailable(self, unreachable_store: CredentialStore, hasher: PasswordHasher) -> None:
        service = CredentialResetService(unreachable_store, hasher)
        with pytest.raises(StoreUnavailable):
            service.provision("alice@example.com", "Secret123!")

    def test_unhashable_password_leaves_existing_identity(
        self, reset_service: CredentialResetService, store: CredentialStore
    ) -> None:
        original = reset_service.provision("alice@example.com", "Secret123!")
        with pytest.raises(HashingFailure):
            reset_service.provision("alice@example.com", "x" * 100)
        assert store.get_by_id(original.id) is not None


class TestRotate:
    def test_rotate_round_trip(
        self, reset_service: CredentialResetService, store: CredentialStore, hasher: PasswordHasher
    ) -> None:
        identity = reset_service.provision("alice@example.com", "old-password")
        reset_service.rotate(identity.id, "new-password")
        stored = store.find_by_email("alice@example.com")
        assert hasher.verify("new-password", stored.password_hash)
        assert not hasher.verify("old-password", stored.password_hash)

    def test_rotate_touches_only_hash_and_updated_at(self, reset_service: CredentialResetService) -> None:
        before = reset_service.provision(
            "alice@example.com", "old", display_name="Alice", avatar_ref="a.png", role="CREATOR"
        )
        after = reset_service.rotate(before.id, "new")
        assert after.password_hash != before.password_hash
        assert after.updated_at >= before.updated_at
        for field in ("id", "email", "display_name", "avatar_ref", "role", "email_verified_at", "created_at"):
            assert getattr(after, field) == getattr(before, field)

    def test_rotate_missing_identity(self, reset_service: CredentialResetService) -> None:
        with pytest.raises(NotFound):
            reset_service.rotate("0" * 32, "new-password")

    def test_rotate_detects_lost_write(
        self, store: CredentialStore, hasher: PasswordHasher, monkeypatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A store that acknowledges the write but reads back the old hash is a critical alert."""
        service = CredentialResetService(store, hasher)
        identity = service.provision("alice@example.com", "old-password")
        stale: Identity = store.get_by_id(identity.id)
        monkeypatch.setattr(store, "get_by_id", lambda identity_id: stale)

        with caplog.at_level(logging.CRITICAL, logger="credguard.reset"):
            with pytest.raises(VerificationMismatch) as exc_info:
                service.rotate(identity.id, "new-password")
        assert exc_info.value.is_critical
        assert exc_info.value.context["client"] == "auth"
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    def test_rotate_detects_corrupted_hash(self, store: CredentialStore, hasher: PasswordHasher, monkeypatch) -> None:
        service = CredentialResetService(store, hasher)
        identity = service.provision("alice@example.com", "old-password")
        real_get = store.get_by_id

        def mangled(identity_id: str) -> Identity:
            found = real_get(identity_id)
            found.password_hash = found.password_hash[:-4] + "AAAA"
            return found

        monkeypatch.setattr(store, "get_by_id", mangled)
        with pytest.raises(VerificationMismatch):
            service.rotate(identity.id, "new-password")


class TestExternalAndVerification:
    def test_ensure_external_identity_creates_without_hash(self, reset_service: CredentialResetService) -> None:
        identity = reset_service.ensure_external_identity("oauth@example.com", display_name="OAuth", avatar_ref="x")
        assert identity.password_hash is None
        assert identity.role == "FAN"

    def test_ensure_external_identity_returns_existing(self, reset_service: CredentialResetService) -> None:
        existing = reset_service.provision("alice@example.com", "Secret123!")
        again = reset_service.ensure_external_identity("alice@example.com")
        assert again.id == existing.id
        assert again.password_hash == existing.password_hash

    def test_mark_email_verified(self, reset_service: CredentialResetService) -> None:
        identity = reset_service.provision("alice@example.com", "pw")
        assert identity.email_verified_at is None
        verified = reset_service.mark_email_verified(identity.id)
        assert verified.email_verified_at is not None
        assert verified.updated_at >= identity.updated_at
