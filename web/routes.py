"""
web/routes.py -- HTTP routes for piccolo-share.

Every page is server-rendered HTML. Handlers share app.state with the
application assembly: config (ConfigStore), sessions (SessionStore) and
guard (BruteForceGuard).

Route registration order matters. The fixed routes must be registered before
the catch-all, or FastAPI hands "login_action" to the browsing handler.

The admin console lives under a path read from the configuration on every
request, so it cannot be a static route. The catch-all dispatches to it by
comparing the request path with the current admin_path.

Routes:
  POST /login_action          -- check credentials (rate limited per IP)
  POST /logout_action         -- expire the session, redirect /
  GET  /favicon.ico           -- 204, no icon
  GET  /<admin_path>          -- admin console
  GET  /<admin_path>/new_perm_form
  POST /<admin_path>/{save_config,change_password,new_user,delete_user,
                      new_perm,change_perm,delete_perm}
  GET|POST /{path}            -- directory listing or file download
"""

import logging
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from api.limiter import limiter
from auth.dependencies import client_ip, get_session, verify_logged_user
from auth.tokens import authenticate, nocache_id
from core.config import get_settings
from core.models import USERNAME_KEY
from core.store import ConfigStore
from web.admin import ADMIN_ACTIONS, admin_console
from web.browse import browse
from web.templating import BANNED_MESSAGE, render_login_form, render_message

logger = logging.getLogger("piccolo.web")

router = APIRouter()


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Prevents open redirects such as redirect_url=https://attacker.com or
    redirect_url=//attacker.com (protocol-relative). Browsers treat "/\\" like
    "//", so that prefix is refused too.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith(("//", "/\\")):
        return next_url
    return "/"


def _with_nocache(url: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}nocache={nocache_id()}"


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Fixed routes -- registered before the catch-all
# ---------------------------------------------------------------------------


@router.post("/login_action", response_class=HTMLResponse)
@limiter.limit(_login_rate_limit)
def login_action(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    redirect_url: str = Form(""),
) -> Response:
    """Handle the login form.

    A banned IP gets the fixed ban message and nothing else happens: the
    credentials are not even checked, so the answer does not reveal whether
    the username exists.
    """
    ip = client_ip(request)
    guard = request.app.state.guard
    if ip and guard.banned(ip):
        logger.warning("login refused for banned IP %s", ip)
        return render_message(request, BANNED_MESSAGE, status_code=429)

    config: ConfigStore = request.app.state.config
    if authenticate(config.users, username, password):  # timing equalized
        session = get_session(request)
        session.set(USERNAME_KEY, username)
        session.save()
        logger.info('login succeeded for user "%s" from %s', username, ip)
        resp = RedirectResponse(_with_nocache(_safe_next(redirect_url)), status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    if ip:
        guard.record_failed_login(ip)
    logger.warning(
        'login failed for user "%s", IP "%s", banned = %s',
        username,
        ip,
        guard.banned(ip) if ip else False,
    )
    return render_login_form(
        request,
        verify_logged_user(request),
        redirect_url=_safe_next(redirect_url),
        error_msg="Invalid username or password.",
    )


@router.post("/logout_action")
def logout_action(request: Request) -> RedirectResponse:
    """Expire the session; the re-issued cookie is already expired too."""
    session = get_session(request)
    session.expirate()
    session.save()
    return RedirectResponse("/", status_code=302)


@router.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Catch-all dispatcher
# ---------------------------------------------------------------------------


@router.api_route("/{request_path:path}", methods=["GET", "POST"], response_class=HTMLResponse)
async def dispatch(request: Request, request_path: str) -> Response:
    config: ConfigStore = request.app.state.config
    admin_path = config.admin_path
    path = request_path.strip("/")
    if admin_path:
        if path == admin_path:
            return await admin_console(request)
        if path.startswith(admin_path + "/"):
            action = ADMIN_ACTIONS.get(path[len(admin_path) + 1 :])
            if action is not None:
                return await action(request)
    return await browse(request, request_path)
