"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_identity is the mapper.
Resolver, reset and audit code never touches SQL directly.

One logical data set, many handles:
  Each CredentialStore is an explicitly constructed client handle with a
  name ("auth", "admin", ...). Two handles built from the same URL reach the
  same physical store; nothing is cached client-side, so a write through one
  handle is visible to the next read through any other. There is no module-
  level singleton -- callers construct and inject handles.

Security:
  All queries use bound parameters. No f-strings in SQL.
  UNIQUE(email) is the only concurrency mechanism: two concurrent creates for
  one email yield one row and one DuplicateEmail, never two rows.

Availability:
  The schema is created lazily on the first operation that reaches the
  database, so constructing a handle never touches the network. Connection
  failures surface as StoreUnavailable naming the handle; the store logs them
  at WARNING and leaves alerting to the caller. Two processes racing to
  create the schema on a fresh database both proceed.

DB path: auth/credguard.db by default.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, inspect, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, ProgrammingError

from auth.errors import DuplicateEmail, NotFound, StoreUnavailable
from auth.models import Identity, Role

logger = logging.getLogger("credguard.store")

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'credguard.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex, assigned at creation
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for external-provider identities
    Column("display_name", String(255)),
    Column("avatar_ref", Text),
    Column("role", String(20), nullable=False, server_default=Role.FAN.value),
    Column("email_verified_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Fields update() accepts. id and created_at are immutable; updated_at is
# always set by the store itself.
_MUTABLE_FIELDS = frozenset({"email", "password_hash", "display_name", "avatar_ref", "role", "email_verified_at"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _redact_url(db_url: str) -> str:
    """Drop credentials from a connection URL before it reaches a log line."""
    scheme, sep, rest = db_url.partition("://")
    if not sep or "@" not in rest:
        return db_url
    return f"{scheme}://***@{rest.rpartition('@')[2]}"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Identity records, reachable through a named client handle.

    Usage:
        store = CredentialStore(db_url, name="auth")
        identity = store.create(email="alice@example.com", password_hash=h)
        store.find_by_email("alice@example.com")
        store.close()
    """

    def __init__(self, db_url: str = DEFAULT_DB_URL, name: str = "primary") -> None:
        self.name = name
        self.db_url = db_url or DEFAULT_DB_URL
        connect_args: dict = {}
        if self.db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(self.db_url, connect_args=connect_args)
        if self.db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"CredentialStore(name={self.name!r}, url={_redact_url(self.db_url)!r})"

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                _metadata.create_all(self.engine)
            except (OperationalError, ProgrammingError):
                # Another process created the table between the existence check
                # and CREATE TABLE. Anything else re-raises.
                if not inspect(self.engine).has_table(_identities.name):
                    raise
                logger.debug("Store %s: identities table created concurrently", self.name)
            self._schema_ready = True
            logger.info("Store %s ready (%s)", self.name, _redact_url(self.db_url))

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        """Yield a connection, translating driver-level outages to StoreUnavailable.

        IntegrityError is left alone so callers can map it to a domain error.
        """
        try:
            self._ensure_schema()
            with self.engine.connect() as conn:
                yield conn
        except (OperationalError, InterfaceError) as exc:
            # The caller picks the alert level (startup grace, diagnostics channel).
            logger.warning("Store %s unavailable: %s", self.name, exc.orig if exc.orig is not None else exc)
            raise StoreUnavailable(f"credential store '{self.name}' is unavailable", client=self.name) from exc

    def ping(self) -> None:
        """Round-trip to the database. Raises StoreUnavailable if it cannot be reached."""
        with self._connection() as conn:
            conn.execute(select(1)).scalar()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact email (case-sensitive). Returns None if not found."""
        with self._connection() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_id(self, identity_id: str) -> Identity | None:
        """Look up an identity by id. Returns None if not found."""
        with self._connection() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_identities(self) -> list[Identity]:
        """Return all identities ordered by email. Administrative operation."""
        with self._connection() as conn:
            rows = conn.execute(_identities.select().order_by(_identities.c.email)).fetchall()
        return [_row_to_identity(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        email: str,
        password_hash: str | None = None,
        display_name: str | None = None,
        avatar_ref: str | None = None,
        role: str = Role.FAN.value,
        email_verified_at: str | None = None,
    ) -> Identity:
        """Insert a new identity and return it as stored.

        Raises DuplicateEmail if the email is already taken. Concurrent
        creates for the same email rely on the UNIQUE constraint: exactly one
        succeeds.
        """
        now = _now_iso()
        values = {
            "id": uuid.uuid4().hex,
            "email": email,
            "password_hash": password_hash,
            "display_name": display_name,
            "avatar_ref": avatar_ref,
            "role": Role(role).value,
            "email_verified_at": email_verified_at,
            "created_at": now,
            "updated_at": now,
        }
        with self._connection() as conn:
            try:
                conn.execute(_identities.insert().values(**values))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateEmail(f"an identity with email {email!r} already exists", email=email) from exc
        logger.info("Store %s created identity %s", self.name, values["id"])
        return _row_to_identity(values)

    def update(self, identity_id: str, **fields) -> Identity:
        """Update mutable fields on an existing identity and return the new state.

        Accepted fields: email, password_hash, display_name, avatar_ref, role,
        email_verified_at. Unknown keys raise ValueError rather than being
        silently ignored. updated_at is always refreshed, even when fields is
        empty.

        Raises NotFound if identity_id does not exist, DuplicateEmail if a new
        email collides with another identity.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown identity fields: {sorted(unknown)!r}")
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        with self._connection() as conn:
            row = conn.execute(
                select(_identities.c.created_at).where(_identities.c.id == identity_id)
            ).fetchone()
            if row is None:
                raise NotFound(f"no identity with id {identity_id!r}", identity_id=identity_id)
            # ISO strings in UTC compare lexically; never let updated_at fall behind created_at.
            fields["updated_at"] = max(_now_iso(), row.created_at)
            try:
                result = conn.execute(_identities.update().where(_identities.c.id == identity_id).values(**fields))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise DuplicateEmail(
                    f"an identity with email {fields.get('email')!r} already exists", email=fields.get("email")
                ) from exc
            if result.rowcount == 0:
                # Deleted between the existence check and the update.
                raise NotFound(f"no identity with id {identity_id!r}", identity_id=identity_id)
            updated = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        if updated is None:
            raise NotFound(f"no identity with id {identity_id!r}", identity_id=identity_id)
        return _row_to_identity(updated)

    def delete(self, identity_id: str) -> None:
        """Permanently remove an identity. Raises NotFound if it does not exist.

        No soft delete: re-creating the same email afterwards starts clean.
        """
        with self._connection() as conn:
            result = conn.execute(_identities.delete().where(_identities.c.id == identity_id))
            conn.commit()
        if result.rowcount == 0:
            raise NotFound(f"no identity with id {identity_id!r}", identity_id=identity_id)
        logger.info("Store %s deleted identity %s", self.name, identity_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    # Accepts both SQLAlchemy Row objects and the plain dict create() built.
    data = row if isinstance(row, dict) else row._mapping
    return Identity(
        id=data["id"],
        email=data["email"],
        password_hash=data["password_hash"],
        display_name=data["display_name"],
        avatar_ref=data["avatar_ref"],
        role=data["role"],
        email_verified_at=data["email_verified_at"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )
