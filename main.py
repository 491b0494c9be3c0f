#!/usr/bin/env python3
"""
CredGuard -- operator tooling for the credential store.

Usage:
  python main.py list
  python main.py selftest
  python main.py provision alice@example.com --role CREATOR --name Alice
  python main.py provision                     # fixed test identity
  python main.py rotate alice@example.com
  python main.py audit alice@example.com
  python main.py audit alice@example.com --check-password
  python main.py check-login alice@example.com

Passwords are prompted for unless --password is given. Prefer the prompt:
a password on the command line ends up in shell history.

Environment variables:
  DATABASE_URL        Authentication pathway store (what logins use).
  ADMIN_DATABASE_URL  Administrative pathway store (what this tool writes to).
                      Defaults to DATABASE_URL. audit compares the two.
  BCRYPT_ROUNDS       Cost factor for new hashes (default 12).

Exit status: 0 success, 1 operational failure, 2 consistency or
verification alert.
"""

from __future__ import annotations

import argparse
import getpass
import sys
from typing import Optional

from auth.audit import ConsistencyAuditor, hash_fingerprint
from auth.errors import CredentialError, InvalidCredentials, NoCredentialSet
from auth.hashing import PasswordHasher, cost_of
from auth.models import Role
from auth.reset import CredentialResetService
from auth.resolver import AuthorizationResolver
from auth.store import CredentialStore
from core.config import Settings, get_settings

# Fixture identity for smoke-testing a fresh environment end to end.
TEST_IDENTITY_EMAIL = "test@example.com"
TEST_IDENTITY_PASSWORD = "Secret123!"  # noqa: S105 # nosec B105 -- documented fixture credential

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ALERT = 2


def _read_password(args: argparse.Namespace, prompt: str = "Password: ") -> str:
    if args.password is not None:
        return args.password
    return getpass.getpass(prompt)


def _admin_store(settings: Settings) -> CredentialStore:
    return CredentialStore(settings.resolved_admin_database_url, name="admin")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    store = _admin_store(settings)
    try:
        identities = store.list_identities()
    finally:
        store.close()
    if not identities:
        print("  No identities.")
        return EXIT_OK
    print(f"  {'EMAIL':<36} {'ROLE':<8} {'PASSWORD':<9} {'VERIFIED':<9} ID")
    for identity in identities:
        credential = f"cost {cost_of(identity.password_hash)}" if identity.has_credential else "none"
        verified = "yes" if identity.email_verified_at else "no"
        print(f"  {identity.email:<36} {identity.role:<8} {credential:<9} {verified:<9} {identity.id}")
    print(f"\n  {len(identities)} identit{'y' if len(identities) == 1 else 'ies'}.")
    return EXIT_OK


def cmd_selftest(args: argparse.Namespace, settings: Settings) -> int:
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    hashed = hasher.self_test()
    print(f"  Hasher self-test passed (cost {cost_of(hashed)}, fingerprint {hash_fingerprint(hashed)}).")
    return EXIT_OK


def cmd_provision(args: argparse.Namespace, settings: Settings) -> int:
    if args.email:
        email, password = args.email, _read_password(args)
    else:
        email, password = TEST_IDENTITY_EMAIL, TEST_IDENTITY_PASSWORD
        print(f"  No email given -- provisioning the fixed test identity {email}.")
    store = _admin_store(settings)
    try:
        service = CredentialResetService(store, PasswordHasher(rounds=settings.bcrypt_rounds), settings.default_role)
        fields = {"display_name": args.name}
        if args.role:
            fields["role"] = args.role
        identity = service.provision(email, password, **fields)
    finally:
        store.close()
    print(f"  Provisioned {identity.email} (id {identity.id}, role {identity.role}).")
    return EXIT_OK


def cmd_rotate(args: argparse.Namespace, settings: Settings) -> int:
    store = _admin_store(settings)
    try:
        identity = store.find_by_email(args.email)
        if identity is None:
            print(f"  [!] No identity with email {args.email}.")
            return EXIT_FAILURE
        password = _read_password(args, "New password: ")
        service = CredentialResetService(store, PasswordHasher(rounds=settings.bcrypt_rounds), settings.default_role)
        rotated = service.rotate(identity.id, password)
    finally:
        store.close()
    print(f"  Rotated password for {rotated.email}; read-back verified.")
    return EXIT_OK


def cmd_audit(args: argparse.Namespace, settings: Settings) -> int:
    password: Optional[str] = _read_password(args) if args.check_password or args.password is not None else None
    stores = [
        CredentialStore(settings.database_url, name="auth"),
        CredentialStore(settings.resolved_admin_database_url, name="admin"),
    ]
    try:
        auditor = ConsistencyAuditor(stores, PasswordHasher(rounds=settings.bcrypt_rounds))
        report = auditor.audit(args.email, password)
    finally:
        for store in stores:
            store.close()

    for obs in report.observations:
        if not obs.reachable:
            state = f"unreachable ({obs.error})"
        elif not obs.present:
            state = "absent"
        elif not obs.has_hash:
            state = "present, no password"
        else:
            state = f"present, hash {hash_fingerprint(obs.password_hash)}"
        if obs.password_matches is not None:
            state += ", password " + ("accepted" if obs.password_matches else "rejected")
        print(f"  {obs.client:<8} {state}")
    print(f"\n  {report.status}")
    if not report.consistent:
        print(f"  [!] Clients disagree: {', '.join(report.mismatched_clients)}")
        return EXIT_ALERT
    return EXIT_OK


def cmd_check_login(args: argparse.Namespace, settings: Settings) -> int:
    """Run the real authenticate() path with the failure reason revealed."""
    password = _read_password(args)
    store = CredentialStore(settings.database_url, name="auth")
    resolver = AuthorizationResolver(
        store, PasswordHasher(rounds=settings.bcrypt_rounds), rehash_on_login=settings.rehash_on_login
    )
    try:
        projection = resolver.authenticate(args.email, password, reveal_reason=True)
    except NoCredentialSet:
        print(f"  [!] {args.email} exists but has no password credential.")
        return EXIT_FAILURE
    except InvalidCredentials:
        print(f"  [!] Login rejected for {args.email} (unknown email or wrong password).")
        return EXIT_FAILURE
    finally:
        store.close()
    print(f"  Login OK: {projection.email} (id {projection.id}, role {projection.role}).")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credguard",
        description="Inspect, provision and audit credentials in the identity store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("list", help="List identities in the admin store")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("selftest", help="Hash a fixed plaintext and verify it immediately")
    p.set_defaults(func=cmd_selftest)

    p = sub.add_parser("provision", help="Delete and recreate an identity with a known password")
    p.add_argument("email", nargs="?", help=f"Identity email (default: fixed test identity {TEST_IDENTITY_EMAIL})")
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.add_argument("--name", help="Display name")
    p.add_argument("--role", type=str.upper, choices=[r.value for r in Role], help="Role (default: DEFAULT_ROLE)")
    p.set_defaults(func=cmd_provision)

    p = sub.add_parser("rotate", help="Set a new password for an identity and verify the write")
    p.add_argument("email")
    p.add_argument("--password", help="New password (prompted if omitted)")
    p.set_defaults(func=cmd_rotate)

    p = sub.add_parser("audit", help="Compare the auth and admin store clients for one email")
    p.add_argument("email")
    p.add_argument("--check-password", action="store_true", help="Prompt for a password and test it on each client")
    p.add_argument("--password", help="Password to test on each client (implies --check-password)")
    p.set_defaults(func=cmd_audit)

    p = sub.add_parser("check-login", help="Run the login path and report why it fails")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.set_defaults(func=cmd_check_login)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return EXIT_OK

    settings = get_settings()
    try:
        return args.func(args, settings)
    except CredentialError as exc:
        print(f"  [!] {exc.kind.value}: {exc.message}")
        return EXIT_ALERT if exc.is_critical else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
