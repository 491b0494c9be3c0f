"""
tests/test_startup.py -- Startup tolerance of an unavailable credential store.

Covers:
  - StartupGrace: INFO inside the window, ERROR after it
  - wait_for(): retries, gives up without raising, lets other errors through
  - an unreachable store logs nothing at ERROR inside the window
  - the real API lifespan starts with an unreachable store and serves
    store_unavailable / health "unavailable" instead of crashing
"""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

import api.main
from api.main import app, lifespan
from auth.errors import StoreUnavailable
from auth.store import CredentialStore
from core.config import Settings
from core.startup import StartupGrace, wait_for


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestStartupGrace:
    def test_failures_inside_window_are_not_alerts(self, caplog: pytest.LogCaptureFixture) -> None:
        clock = FakeClock()
        grace = StartupGrace(30, clock=clock)
        with caplog.at_level(logging.INFO, logger="credguard.startup"):
            grace.report("store auth", StoreUnavailable("down", client="auth"))
        assert grace.active
        assert [r.levelno for r in caplog.records] == [logging.INFO]

    def test_failures_after_window_are_errors(self, caplog: pytest.LogCaptureFixture) -> None:
        clock = FakeClock()
        grace = StartupGrace(30, clock=clock)
        clock.now += 31
        with caplog.at_level(logging.INFO, logger="credguard.startup"):
            grace.report("store auth", StoreUnavailable("down", client="auth"))
        assert not grace.active
        assert [r.levelno for r in caplog.records] == [logging.ERROR]


class TestWaitFor:
    def test_succeeds_after_retries(self) -> None:
        attempts = []

        def check() -> None:
            attempts.append(1)
            if len(attempts) < 3:
                raise StoreUnavailable("not yet")

        sleeps: list[float] = []
        ok = wait_for(check, "store", StartupGrace(30), 5, 0.5, (StoreUnavailable,), sleep=sleeps.append)
        assert ok is True
        assert len(attempts) == 3
        assert sleeps == [0.5, 0.5]

    def test_gives_up_without_raising(self) -> None:
        def check() -> None:
            raise StoreUnavailable("down")

        assert wait_for(check, "store", StartupGrace(30), 2, 0, (StoreUnavailable,), sleep=lambda s: None) is False

    def test_unexpected_errors_propagate(self) -> None:
        def check() -> None:
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            wait_for(check, "store", StartupGrace(30), 3, 0, (StoreUnavailable,), sleep=lambda s: None)


    def test_unreachable_store_inside_window_logs_no_errors(
        self, unreachable_store: CredentialStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Store-level logging leaves the alert decision to the grace window."""
        with caplog.at_level(logging.DEBUG):
            ok = wait_for(
                unreachable_store.ping, "store down", StartupGrace(30), 2, 0, (StoreUnavailable,), sleep=lambda s: None
            )
        assert ok is False
        assert [r.getMessage() for r in caplog.records if r.levelno >= logging.ERROR] == []
        assert sum("within grace window" in r.getMessage() for r in caplog.records) == 2

    def test_unreachable_store_after_window_is_an_error(
        self, unreachable_store: CredentialStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        clock = FakeClock()
        grace = StartupGrace(30, clock=clock)
        clock.now += 60
        with caplog.at_level(logging.DEBUG):
            wait_for(unreachable_store.ping, "store down", grace, 1, 0, (StoreUnavailable,), sleep=lambda s: None)
        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert [r.name for r in errors] == ["credguard.startup"]


class TestLifespanWithStoreDown:
    def test_app_starts_and_reports_unavailable(self, tmp_path, monkeypatch) -> None:
        settings = Settings(
            debug=True,
            bcrypt_rounds=4,
            database_url=f"sqlite:///{tmp_path / 'missing-dir' / 'creds.db'}",
            startup_connect_attempts=2,
            startup_retry_delay=0,
        )
        monkeypatch.setattr(api.main, "get_settings", lambda: settings)
        app.router.lifespan_context = lifespan

        with TestClient(app, base_url="http://localhost") as client:
            health = client.get("/api/v1/health")
            authorize = client.post("/api/v1/auth/authorize", json={"email": "a@example.com", "password": "x"})

        assert health.status_code == 200
        assert health.json()["store"] == "unavailable"
        assert authorize.status_code == 503
        assert authorize.json()["error"]["code"] == "store_unavailable"
