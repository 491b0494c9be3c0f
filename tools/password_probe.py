"""
tools/password_probe.py -- OFFLINE DEBUGGING AID. Not a security feature.

Tries a short list of common passwords against ONE stored hash, to answer
"which password did the seed script actually set?" when a fixture login
fails. It is never imported by auth/ or api/ and has no path from the
authorize callback; keep it that way.

Usage:
  python -m tools.password_probe --hash '$2b$12$...'
  python -m tools.password_probe --email test@example.com
  python -m tools.password_probe --email test@example.com --wordlist words.txt

--email reads the hash through the admin store (ADMIN_DATABASE_URL).
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from auth.hashing import PasswordHasher, cost_of
from auth.store import CredentialStore
from core.config import get_settings

# Passwords seed scripts and fixtures tend to use.
COMMON_PASSWORDS = (
    "password",
    "password123",
    "Password123!",
    "Secret123!",
    "test123",
    "testpass123",
    "admin",
    "admin123",
    "changeme",
    "123456",
    "letmein",
    "qwerty",
)


def probe(password_hash: str, candidates: Iterable[str], hasher: Optional[PasswordHasher] = None) -> Optional[str]:
    """Return the first candidate that verifies against password_hash, or None."""
    hasher = hasher or PasswordHasher(rounds=cost_of(password_hash) or 4)
    for candidate in candidates:
        if hasher.verify(candidate, password_hash):
            return candidate
    return None


def _load_wordlist(path: str) -> list[str]:
    file_path = Path(path).resolve()
    if not file_path.is_file():
        raise SystemExit(f"  [!] '{path}' is not a readable file.")
    lines = file_path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.startswith("#")]


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="password_probe",
        description="OFFLINE debugging aid: try common passwords against one stored hash.",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--hash", dest="password_hash", help="bcrypt hash to probe")
    source.add_argument("--email", help="Read the hash for this email from the admin store")
    parser.add_argument("--wordlist", help="File of candidate passwords, one per line (# comments ignored)")
    args = parser.parse_args(argv)

    password_hash = args.password_hash
    if args.email:
        store = CredentialStore(get_settings().resolved_admin_database_url, name="admin")
        try:
            identity = store.find_by_email(args.email)
        finally:
            store.close()
        if identity is None or not identity.has_credential:
            print(f"  [!] {args.email} has no stored password hash.")
            return 1
        password_hash = identity.password_hash

    if cost_of(password_hash) is None:
        print("  [!] Not a bcrypt hash.")
        return 1

    candidates = _load_wordlist(args.wordlist) if args.wordlist else COMMON_PASSWORDS
    found = probe(password_hash, candidates)
    if found is None:
        print(f"  No match among {len(candidates)} candidate(s).")
        return 1
    print(f"  Match: {found!r}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
