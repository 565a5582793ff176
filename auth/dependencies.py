"""
auth/dependencies.py -- Per-request identity helpers.

get_session() is the only way handlers obtain a session handle. It remembers
the handle on request.state.session; the session-cookie middleware in
api/main.py reads it back after the handler returns and sets the cookie on
the outgoing response when save() was called.

verify_logged_user() reads the username from the session, saves the session
(renewing its cookie) and recomputes the admin flag from the current
admin_users parameter. Nothing is cached between requests, so editing the
admin list takes effect on the next request.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI request handling.
"""

from __future__ import annotations

from fastapi import Request

from auth.access import is_admin
from auth.models import CurrentUser
from auth.sessions import SessionHandle, SessionStore
from core.models import SESSION_COOKIE_NAME, USERNAME_KEY
from core.store import ConfigStore


def client_ip(request: Request) -> str:
    """Peer address of the connection. "" when the transport gives none."""
    return request.client.host if request.client else ""


def get_session(request: Request) -> SessionHandle:
    """Return this request's session handle, creating it on first use.

    Several helpers may call this during one request; they all get the same
    handle.
    """
    handle = getattr(request.state, "session", None)
    if handle is None:
        store: SessionStore = request.app.state.sessions
        handle = store.get_session(request.cookies.get(SESSION_COOKIE_NAME))
        request.state.session = handle
    return handle


def verify_logged_user(request: Request) -> CurrentUser:
    """Resolve the username from the session and the admin flag from config.

    Usage:
        user = verify_logged_user(request)
        if not user.is_admin:
            ...
    """
    session = get_session(request)
    username = session.get(USERNAME_KEY)
    session.save()
    config: ConfigStore = request.app.state.config
    return CurrentUser(username=username, is_admin=is_admin(username, config.admin_users))
