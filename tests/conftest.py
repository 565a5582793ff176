"""
tests/conftest.py -- Shared test fixtures for piccolo-share.

This module provides:
  - FakeClock: a settable clock for the session store and brute-force guard
  - content_root: a small published tree (public files, a private directory)
  - config_store: a ConfigStore written to a temporary configuration directory
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - web_client: TestClient with follow_redirects=False for route tests
  - login: fixture returning a helper that posts the login form

Every test gets fresh stores, so bans and sessions never leak between tests.
Password hashes are computed once per session; bcrypt is slow on purpose.

Environment variables must be set before any core/api import so
get_settings() builds its cached Settings from the test values.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

# CRITICAL: set before importing the app. No penalty delay in tests, and a
# login ceiling high enough that only the brute-force guard ever triggers.
os.environ.setdefault("NOT_FOUND_DELAY_SECONDS", "0")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.bruteforce import BruteForceGuard
from auth.sessions import SessionStore
from auth.tokens import hash_password
from core.store import ConfigStore

PASSWORDS = {
    "alice": "alice-secret",
    "bob": "bob-secret",
    "carol": "carol-secret",
}


class FakeClock:
    """Callable clock starting at a fixed UTC instant; advance() moves it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Published content and configuration
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def password_hashes() -> dict[str, str]:
    return {username: hash_password(password) for username, password in PASSWORDS.items()}


@pytest.fixture
def content_root(tmp_path: Path) -> Path:
    """Build the published tree:

    www/
      readme.txt          "hello from piccolo"
      notes.md
      archive.bin         12000 bytes
      docs/guide.html
      private/secret.txt  "top secret"
      private/sub/deep.txt
      private2/other.txt
    """
    root = tmp_path / "www"
    (root / "docs").mkdir(parents=True)
    (root / "private" / "sub").mkdir(parents=True)
    (root / "private2").mkdir()
    (root / "readme.txt").write_text("hello from piccolo", encoding="utf-8")
    (root / "notes.md").write_text("# notes", encoding="utf-8")
    (root / "archive.bin").write_bytes(b"\x00" * 12000)
    (root / "docs" / "guide.html").write_text("<h1>guide</h1>", encoding="utf-8")
    (root / "private" / "secret.txt").write_text("top secret", encoding="utf-8")
    (root / "private" / "sub" / "deep.txt").write_text("deeper secret", encoding="utf-8")
    (root / "private2" / "other.txt").write_text("other", encoding="utf-8")
    return root


@pytest.fixture
def config_store(tmp_path: Path, content_root: Path, password_hashes: dict[str, str]) -> ConfigStore:
    """alice is the only admin; /private is open to alice and bob."""
    config_dir = tmp_path / "settings"
    config_dir.mkdir()
    store = ConfigStore(
        config_dir,
        {
            "root_directory": str(content_root),
            "http_port": "8080",
            "admin_path": "admin",
            "admin_users": "alice",
        },
        dict(password_hashes),
        {"/private": "alice,bob"},
    )
    store.save_parameters()
    store.save_users()
    store.save_permissions()
    return store


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def _patch_lifespan(config: ConfigStore, sessions: SessionStore, guard: BruteForceGuard):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores into app.state so routes see the temporary
    configuration instead of the one named by CONFIG_DIR.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.config = config
        app.state.sessions = sessions
        app.state.guard = guard
        yield

    return test_lifespan


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore(timedelta(hours=6))


@pytest.fixture
def guard() -> BruteForceGuard:
    return BruteForceGuard(timedelta(minutes=20), 5)


@pytest.fixture
def web_client(
    config_store: ConfigStore,
    session_store: SessionStore,
    guard: BruteForceGuard,
) -> Generator[TestClient, None, None]:
    """TestClient over the real app with isolated stores.

    follow_redirects=False is essential: tests assert on redirect locations,
    which are invisible once the client follows them.
    """
    app.router.lifespan_context = _patch_lifespan(config_store, session_store, guard)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def login():
    """Return a helper posting the login form.

    Usage:
        resp = login(web_client, "alice")
        resp = login(web_client, "alice", "wrong-password")

    The password defaults to the user's real one.
    """

    def _login(client: TestClient, username: str, password: str | None = None, redirect_url: str = "/"):
        return client.post(
            "/login_action",
            data={
                "username": username,
                "password": PASSWORDS.get(username, "") if password is None else password,
                "redirect_url": redirect_url,
            },
        )

    return _login
