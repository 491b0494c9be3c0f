"""
tests/conftest.py -- Shared test fixtures for CredGuard.

This module provides:
  - store_url / other_store_url: unique named shared-memory SQLite URIs
  - store, admin_store: two client handles on the SAME physical store
  - other_store: a handle on a DIFFERENT physical store
  - hasher, resolver, reset_service: components wired to `store`
  - api_client: TestClient with a patched lifespan using `store`

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for two reasons. TestClient runs route handlers in a thread pool, and plain
:memory: DBs are per-connection. And the consistency tests need two
independently constructed engines to reach one physical store -- the named
URI format (file:name?mode=memory&cache=shared&uri=true) shares one in-memory
instance across all connections in the same process.

Environment must be set before any core/auth/api import: get_settings() is
cached, and api/routes/v1/auth.py reads the rate limit at import time.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUTHORIZE_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.hashing import PasswordHasher
from auth.reset import CredentialResetService
from auth.resolver import AuthorizationResolver
from auth.store import CredentialStore
from core.startup import StartupGrace

# Cheapest cost bcrypt accepts; keeps the suite fast.
TEST_ROUNDS = 4


def memory_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store_url() -> str:
    return memory_url(f"creds_{uuid.uuid4().hex}")


@pytest.fixture
def other_store_url() -> str:
    return memory_url(f"creds_other_{uuid.uuid4().hex}")


@pytest.fixture
def store(store_url: str) -> Generator[CredentialStore, None, None]:
    """Authentication-pathway handle."""
    s = CredentialStore(store_url, name="auth")
    yield s
    s.close()


@pytest.fixture
def admin_store(store_url: str, store: CredentialStore) -> Generator[CredentialStore, None, None]:
    """Administrative-pathway handle on the same physical store as `store`.

    Depends on `store` so the shared in-memory DB already has a live
    connection (and therefore stays alive) while this handle is in use.
    """
    s = CredentialStore(store_url, name="admin")
    yield s
    s.close()


@pytest.fixture
def other_store(other_store_url: str) -> Generator[CredentialStore, None, None]:
    """Handle on a different physical store -- the misconfiguration case."""
    s = CredentialStore(other_store_url, name="replica")
    yield s
    s.close()


@pytest.fixture
def unreachable_store(tmp_path) -> Generator[CredentialStore, None, None]:
    """Handle whose database file can never be opened."""
    s = CredentialStore(f"sqlite:///{tmp_path / 'missing-dir' / 'creds.db'}", name="down")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def resolver(store: CredentialStore, hasher: PasswordHasher) -> AuthorizationResolver:
    return AuthorizationResolver(store, hasher)


@pytest.fixture
def reset_service(store: CredentialStore, hasher: PasswordHasher) -> CredentialResetService:
    return CredentialResetService(store, hasher)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, hasher: PasswordHasher):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so routes see the isolated test DB
    rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.grace = StartupGrace(0)
        app.state.store = store
        app.state.resolver = AuthorizationResolver(store, hasher)
        yield

    return test_lifespan


@pytest.fixture
def api_client(store: CredentialStore, hasher: PasswordHasher) -> Generator[TestClient, None, None]:
    """TestClient over the real app, backed by the `store` fixture."""
    app.router.lifespan_context = _patch_lifespan(store, hasher)
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client
