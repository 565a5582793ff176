"""
web/templating.py -- Jinja2 environment and the page helpers every handler uses.

Every page extends templates/layout.html, which shows the logged user, the
"change" (spontaneous login) link and the restart warning. Handlers build
their context through page_context() so those values are always present.

Messages shown to users are fixed and generic. Detail goes to the log.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import client_ip
from auth.models import CurrentUser
from auth.tokens import nocache_id
from core.listing import format_file_size

logger = logging.getLogger("piccolo.web")

BANNED_MESSAGE = "too many failed logins; try again later"
NOT_FOUND_MESSAGE = "sorry, nothing found here"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
templates.env.filters["filesize"] = format_file_size
templates.env.filters["timestamp"] = lambda dt: dt.strftime("%Y-%m-%d %H:%M:%S") if dt else "???"


def nocache_url(path: str) -> str:
    """Quote a logical path and append a fresh anti-cache parameter."""
    separator = "&" if "?" in path else "?"
    return f"{quote(path or '/')}{separator}nocache={nocache_id()}"


templates.env.globals["nocache_url"] = nocache_url


def page_context(request: Request, user: CurrentUser | None, **extra) -> dict:
    config = request.app.state.config
    context = {
        "user": user,
        "restart_needed": config.restart_needed,
        "admin_path": config.admin_path,
    }
    context.update(extra)
    return context


def render_message(
    request: Request,
    message: str,
    status_code: int = 200,
    user: CurrentUser | None = None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "message.html",
        page_context(request, user, message=message),
        status_code=status_code,
    )


def render_login_form(
    request: Request,
    user: CurrentUser,
    redirect_url: str,
    status_code: int = 401,
    error_msg: str | None = None,
) -> HTMLResponse:
    """Show the login form in place of the requested page.

    Banned addresses get the fixed ban message instead, so a banned client
    cannot even see the form.
    """
    ip = client_ip(request)
    if ip and request.app.state.guard.banned(ip):
        logger.warning("login form refused for banned IP %s", ip)
        return render_message(request, BANNED_MESSAGE, status_code=429)
    return templates.TemplateResponse(
        request,
        "login.html",
        page_context(
            request,
            user,
            redirect_url=redirect_url or "/",
            error_msg=error_msg,
        ),
        status_code=status_code,
    )
