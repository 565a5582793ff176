"""
tests/test_login_routes.py -- Integration tests for login, logout and the ban.

Every test gets a fresh BruteForceGuard (see conftest.py), so bans never
leak between tests. The TestClient connects from the address "testclient".

Coverage:
  - successful login: 302 to the target with a nocache parameter, no-store
  - post-login target is always a relative path (open-redirect prevention)
  - failed login: 401 login form with an error, failure recorded
  - the fifth failure bans the address (429), even with the right password
  - a banned address cannot see the login form, public pages still work
  - logout expires the session
  - the per-address request ceiling on /login_action answers 429 with Retry-After
"""

from __future__ import annotations

from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from auth.bruteforce import BruteForceGuard
from auth.sessions import SessionStore
from core.config import get_settings

BANNED = "too many failed logins; try again later"


class TestLogin:
    def test_success_redirects_with_nocache(self, web_client: TestClient, login) -> None:
        resp = login(web_client, "bob", redirect_url="/private/sub")
        assert resp.status_code == 302
        location = urlparse(resp.headers["location"])
        assert location.path == "/private/sub"
        assert location.query.startswith("nocache=")
        assert resp.headers["cache-control"] == "no-store"

    def test_success_sets_username(self, web_client: TestClient, login, session_store: SessionStore) -> None:
        login(web_client, "bob")
        session_id = web_client.cookies.get("msessionid")
        assert session_store.get_session(session_id).get("username") == "bob"

    def test_admin_name_is_highlighted(self, web_client: TestClient, login) -> None:
        login(web_client, "alice")
        assert '<span class="admin">alice</span>' in web_client.get("/").text

    @pytest.mark.parametrize(
        "target",
        ["//evil.example", "https://evil.example/", "/\\evil.example", "", "relative/path"],
    )
    def test_unsafe_targets_fall_back_to_root(self, web_client: TestClient, login, target: str) -> None:
        resp = login(web_client, "bob", redirect_url=target)
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("/?nocache=")

    def test_failure_shows_form(self, web_client: TestClient, login, guard: BruteForceGuard) -> None:
        resp = login(web_client, "bob", "wrong-password", redirect_url="/private")
        assert resp.status_code == 401
        assert "Invalid username or password." in resp.text
        assert 'value="/private"' in resp.text
        assert guard.failures("testclient") == 1
        assert "set-cookie" in resp.headers

    def test_unknown_user_fails_like_a_wrong_password(self, web_client: TestClient, login) -> None:
        resp = login(web_client, "mallory", "whatever")
        assert resp.status_code == 401
        assert "Invalid username or password." in resp.text

    def test_failed_login_keeps_previous_identity(self, web_client: TestClient, login) -> None:
        login(web_client, "bob")
        login(web_client, "alice", "wrong-password")
        assert "bob" in web_client.get("/").text


class TestBan:
    def _fail(self, client: TestClient, login, times: int):
        resp = None
        for _ in range(times):
            resp = login(client, "bob", "wrong-password")
        return resp

    def test_four_failures_do_not_ban(self, web_client: TestClient, login) -> None:
        resp = self._fail(web_client, login, 4)
        assert resp.status_code == 401
        assert login(web_client, "bob").status_code == 302

    def test_fifth_failure_bans(self, web_client: TestClient, login) -> None:
        resp = self._fail(web_client, login, 5)
        assert resp.status_code == 429
        assert BANNED in resp.text

    def test_banned_address_with_right_password(
        self, web_client: TestClient, login, session_store: SessionStore
    ) -> None:
        self._fail(web_client, login, 5)
        resp = login(web_client, "bob")
        assert resp.status_code == 429
        assert BANNED in resp.text
        session_id = web_client.cookies.get("msessionid")
        assert session_store.get_session(session_id).get("username") == ""

    def test_banned_address_cannot_see_login_form(self, web_client: TestClient, login) -> None:
        self._fail(web_client, login, 5)
        resp = web_client.get("/private/secret.txt")
        assert resp.status_code == 429
        assert 'id="login_form"' not in resp.text

    def test_banned_address_still_browses_public_pages(self, web_client: TestClient, login) -> None:
        self._fail(web_client, login, 5)
        assert web_client.get("/readme.txt").status_code == 200


class TestLogout:
    def test_logout_expires_session(self, web_client: TestClient, login, session_store: SessionStore) -> None:
        login(web_client, "bob")
        session_id = web_client.cookies.get("msessionid")

        resp = web_client.post("/logout_action")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert session_id not in session_store or session_store.get_session(session_id).id != session_id

        resp = web_client.get("/private/secret.txt")
        assert resp.status_code == 401

    def test_get_logout_is_not_an_action(self, web_client: TestClient, login) -> None:
        """Only POST logs out; a GET is an ordinary (missing) path."""
        login(web_client, "bob")
        web_client.get("/logout_action")
        assert web_client.get("/private/secret.txt").status_code == 200


class TestRequestCeiling:
    """slowapi ceiling on POST /login_action, independent of the ban."""

    @pytest.fixture
    def low_ceiling(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LOGIN_RATE_LIMIT", "2/minute")
        get_settings.cache_clear()
        limiter.reset()
        yield
        limiter.reset()
        get_settings.cache_clear()

    def test_third_request_in_a_minute_is_refused(
        self, low_ceiling, web_client: TestClient, login, guard: BruteForceGuard
    ) -> None:
        codes = [login(web_client, "bob", "wrong-password").status_code for _ in range(2)]
        assert codes == [401, 401]

        resp = login(web_client, "bob", "wrong-password")
        assert resp.status_code == 429
        assert "Retry-After" in resp.headers
        assert "too many requests" in resp.text
        # Refused before the handler ran: no failure recorded, no ban message.
        assert guard.failures("testclient") == 2
        assert BANNED not in resp.text

    def test_ceiling_applies_to_correct_credentials_too(self, low_ceiling, web_client: TestClient, login) -> None:
        login(web_client, "bob", "wrong-password")
        login(web_client, "bob", "wrong-password")
        assert login(web_client, "bob").status_code == 429
