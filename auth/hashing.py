"""
auth/hashing.py -- bcrypt password hashing and verification.

Security design decisions:
  bcrypt directly (no passlib wrapper). passlib's internal wrap-bug detection
       builds a password longer than 72 bytes, which bcrypt 4.x+ rejects.

  Salt: every hash() call draws a fresh salt from bcrypt.gensalt(), embedded
       in the output. The same password hashed twice never yields the same
       string, yet both verify.

  Cost: the log2 cost factor is encoded in the hash itself ($2b$12$...), so
       verify() honours whatever cost a stored hash was written with. Raising
       the configured cost never locks out users holding older, cheaper
       hashes; needs_rehash() tells the caller when to upgrade them.

  72-byte limit: bcrypt only reads the first 72 bytes. Silent truncation would
       make two distinct long passwords verify against each other, so hash()
       refuses them with HashingFailure and verify() returns False for them.

  Timing: bcrypt.checkpw compares digests in constant time; a mismatch in the
       first character costs the same as one in the last.

  Failure mode: verify() fails closed. Malformed, truncated, or foreign-format
       hashes return False. Diagnostic callers that need to tell "wrong
       password" from "corrupt hash" pass strict=True and get HashingFailure.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from functools import cached_property

import bcrypt

from auth.errors import HashingFailure
from core.config import MAX_BCRYPT_ROUNDS, MIN_BCRYPT_ROUNDS

logger = logging.getLogger("credguard.auth")

DEFAULT_ROUNDS = 12
MAX_PASSWORD_BYTES = 72

# $2a$ (bcryptjs and older libs), $2b$ (current), $2y$ (PHP crypt_blowfish).
_BCRYPT_RE = re.compile(r"^\$2[aby]\$(\d{2})\$[./A-Za-z0-9]{53}$")

_SELF_TEST_PLAINTEXT = "credguard-self-test"  # noqa: S105 # nosec B105 -- fixed probe value, not a credential
_DUMMY_PLAINTEXT = "credguard_timing_dummy"  # noqa: S105 # nosec B105


class PasswordHasher:
    """Salted, adjustable-cost one-way hashing.

    Usage:
        hasher = PasswordHasher(rounds=12)
        stored = hasher.hash("Secret123!")
        hasher.verify("Secret123!", stored)   # True
        hasher.verify("wrong", stored)        # False
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        _check_rounds(rounds)
        self.rounds = rounds

    def hash(self, plaintext: str, cost: int | None = None) -> str:
        """Return a bcrypt hash of plaintext at the given (or configured) cost.

        Raises HashingFailure for a cost outside bcrypt's range or a password
        longer than 72 bytes once UTF-8 encoded.
        """
        rounds = self.rounds if cost is None else cost
        _check_rounds(rounds)
        secret = _encode(plaintext)
        if len(secret) > MAX_PASSWORD_BYTES:
            raise HashingFailure(f"password exceeds {MAX_PASSWORD_BYTES} bytes")
        try:
            return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=rounds)).decode("ascii")
        except ValueError as exc:
            raise HashingFailure(str(exc)) from exc

    def verify(self, plaintext: str, hashed: str | None, *, strict: bool = False) -> bool:
        """Return True if plaintext matches hashed.

        Never raises for a wrong password. Returns False for a missing,
        malformed or foreign-format hash unless strict=True, in which case
        those raise HashingFailure.
        """
        if not hashed or _BCRYPT_RE.match(hashed) is None:
            if strict:
                raise HashingFailure("unrecognized password hash encoding")
            return False
        if not isinstance(plaintext, str):
            return False
        secret = plaintext.encode("utf-8")
        if len(secret) > MAX_PASSWORD_BYTES:
            # hash() never accepts these, so no stored hash can match.
            return False
        try:
            return bcrypt.checkpw(secret, hashed.encode("ascii"))
        except ValueError as exc:
            if strict:
                raise HashingFailure(f"corrupt password hash: {exc}") from exc
            logger.warning("Rejected corrupt bcrypt hash during verification")
            return False

    def needs_rehash(self, hashed: str) -> bool:
        """True if hashed was written at a lower cost than currently configured."""
        cost = cost_of(hashed)
        return cost is not None and cost < self.rounds

    @cached_property
    def dummy_hash(self) -> str:
        """A throwaway hash at the configured cost, for timing equalization.

        Computed on first use so constructing a hasher stays cheap.
        """
        return self.hash(_DUMMY_PLAINTEXT)

    def self_test(self) -> str:
        """Hash a fixed plaintext and verify it immediately.

        Returns the hash on success; raises HashingFailure if the round trip
        fails (broken bcrypt build, wrong backend, encoding problem).
        """
        hashed = self.hash(_SELF_TEST_PLAINTEXT)
        if not self.verify(_SELF_TEST_PLAINTEXT, hashed, strict=True):
            raise HashingFailure("self-test hash did not verify")
        if self.verify(_SELF_TEST_PLAINTEXT + "x", hashed, strict=True):
            raise HashingFailure("self-test hash verified a different password")
        return hashed


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def cost_of(hashed: str | None) -> int | None:
    """Return the cost factor encoded in a bcrypt hash, or None if not bcrypt."""
    match = _BCRYPT_RE.match(hashed or "")
    return int(match.group(1)) if match else None


def _check_rounds(rounds: int) -> None:
    if not isinstance(rounds, int) or not MIN_BCRYPT_ROUNDS <= rounds <= MAX_BCRYPT_ROUNDS:
        raise HashingFailure(f"cost factor must be an integer in {MIN_BCRYPT_ROUNDS}..{MAX_BCRYPT_ROUNDS}")


def _encode(plaintext: str) -> bytes:
    if not isinstance(plaintext, str):
        raise HashingFailure("password must be a string")
    return plaintext.encode("utf-8")
