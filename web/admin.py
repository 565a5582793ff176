"""
web/admin.py -- Administration console and its actions.

Every handler recomputes the admin flag from the current admin_users value.
Non-admins get the login form for the two pages (console, new-permission
form) and a plain "access denied" answer for the mutating actions.

Each mutation edits one map of the ConfigStore and writes the matching file
straight away. Invalid input is logged and ignored; the browser is sent back
to the console either way (303, so the follow-up is a GET).

The console path itself is a parameter (admin_path). It is read from the
ConfigStore per request, so a change applies to the next request.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from fastapi import HTTPException, Request
from fastapi.responses import RedirectResponse, Response
from starlette.concurrency import run_in_threadpool

from auth.access import normalize_path, split_user_list
from auth.dependencies import verify_logged_user
from auth.tokens import hash_password
from core.listing import dir_tree
from core.store import ConfigStore
from core.wizard import MAX_PORT, MIN_PASSWORD_LENGTH, MIN_PORT
from web.templating import page_context, render_login_form, render_message, templates

logger = logging.getLogger("piccolo.admin")

# Parameters the console may change. Anything else in the form is ignored.
EDITABLE_PARAMETERS = ("root_directory", "http_port", "admin_path", "admin_users")

# Fixed routes registered before the catch-all; an admin path equal to one of
# them would be unreachable.
RESERVED_PATHS = frozenset({"login_action", "logout_action", "favicon.ico"})

# The new-permission form still renders above this size, with a log warning.
LARGE_TREE_WARNING = 4096

AdminAction = Callable[[Request], Awaitable[Response]]


def _back_to_console(config: ConfigStore) -> RedirectResponse:
    return RedirectResponse(f"/{config.admin_path}", status_code=303)


def _require_admin(request: Request, action: str) -> Optional[Response]:
    """Return a 403 response for non-admins, None when the caller may proceed.

    Call at the top of mutating handlers:
        if denied := _require_admin(request, "new user"):
            return denied
    """
    if request.method != "POST":
        raise HTTPException(status_code=405)
    user = verify_logged_user(request)
    if user.is_admin:
        return None
    logger.warning('%s action, access denied for user "%s"', action, user.username)
    return render_message(request, f'access denied for user "{user.username}"', status_code=403, user=user)


def _valid_credentials(username: str, password: str) -> bool:
    if not username or "," in username:
        logger.warning("invalid username %r ignored", username)
        return False
    if len(password) < MIN_PASSWORD_LENGTH:
        logger.warning('password for "%s" too short, ignored', username)
        return False
    return True


def _form_value(form, key: str, strip: bool = True) -> str:
    value = form.get(key)
    if not isinstance(value, str):
        return ""
    return value.strip() if strip else value


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


async def admin_console(request: Request) -> Response:
    user = verify_logged_user(request)
    config: ConfigStore = request.app.state.config
    if not user.is_admin:
        logger.warning('admin page, access denied for user "%s"', user.username)
        return render_login_form(request, user, redirect_url=f"/{config.admin_path}")

    logger.info('admin page, user "%s"', user.username)
    return templates.TemplateResponse(
        request,
        "admin.html",
        page_context(
            request,
            user,
            parameters={key: config.parameters.get(key, "") for key in EDITABLE_PARAMETERS},
            users=sorted(config.users.items()),
            permissions=sorted(config.permissions.items()),
            session_count=len(request.app.state.sessions),
            failed_login_count=len(request.app.state.guard),
            min_port=MIN_PORT,
            max_port=MAX_PORT,
        ),
    )


async def new_permission_form(request: Request) -> Response:
    user = verify_logged_user(request)
    config: ConfigStore = request.app.state.config
    if not user.is_admin:
        logger.warning('new permission form, access denied for user "%s"', user.username)
        return render_login_form(request, user, redirect_url=f"/{config.admin_path}/new_perm_form")

    tree_error = False
    directories: list[str] = []
    try:
        directories = await run_in_threadpool(dir_tree, config.root_directory)
    except OSError:
        logger.exception("cannot walk the root directory %s", config.root_directory)
        tree_error = True
    if len(directories) > LARGE_TREE_WARNING:
        logger.warning("the number of directories is very high: %d", len(directories))
    else:
        logger.info("number of available directories: %d", len(directories))

    return templates.TemplateResponse(
        request,
        "new_permission.html",
        page_context(
            request,
            user,
            directories=directories,
            usernames=sorted(config.users),
            tree_error=tree_error,
        ),
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _clean_parameters(form) -> dict[str, str]:
    """Validate the submitted parameters. Invalid values are dropped."""
    changes: dict[str, str] = {}
    for key in EDITABLE_PARAMETERS:
        if key in form:
            changes[key] = _form_value(form, key)

    if "http_port" in changes:
        try:
            port = int(changes["http_port"])
        except ValueError:
            port = 0
        if MIN_PORT <= port <= MAX_PORT:
            changes["http_port"] = str(port)
        else:
            logger.warning("invalid http_port %r ignored", changes.pop("http_port"))

    if "admin_path" in changes:
        admin_path = changes["admin_path"].strip("/")
        if not admin_path or admin_path in RESERVED_PATHS:
            logger.warning("invalid admin_path %r ignored", changes.pop("admin_path"))
        else:
            changes["admin_path"] = admin_path

    if "root_directory" in changes:
        root = changes["root_directory"].replace("\\", "/")
        while len(root) > 1 and root.endswith("/"):
            root = root[:-1]
        if not Path(root).is_dir():
            logger.warning("root_directory %r is not a directory, ignored", changes.pop("root_directory"))
        else:
            changes["root_directory"] = root

    return changes


async def save_config(request: Request) -> Response:
    if denied := _require_admin(request, "save configuration"):
        return denied
    config: ConfigStore = request.app.state.config
    changes = _clean_parameters(await request.form())
    if changes:
        old_port = config.http_port
        config.parameters.update(changes)
        config.save_parameters()
        if config.http_port != old_port:
            config.restart_needed = True
        logger.info("admin page - configuration saved: %s", ", ".join(sorted(changes)))
    return _back_to_console(config)


async def change_password(request: Request) -> Response:
    if denied := _require_admin(request, "change password"):
        return denied
    config: ConfigStore = request.app.state.config
    form = await request.form()
    username = _form_value(form, "change_password_usr")
    password = _form_value(form, "change_password_pwd", strip=False)
    if username not in config.users:
        logger.warning('change password: unknown user "%s" ignored', username)
    elif _valid_credentials(username, password):
        config.users[username] = hash_password(password)
        config.save_users()
        logger.info('admin page - password changed for "%s"', username)
    return _back_to_console(config)


async def new_user(request: Request) -> Response:
    if denied := _require_admin(request, "new user"):
        return denied
    config: ConfigStore = request.app.state.config
    form = await request.form()
    username = _form_value(form, "new_user_usr")
    password = _form_value(form, "new_user_pwd", strip=False)
    if _valid_credentials(username, password):
        # An existing user with the same name is overwritten.
        config.users[username] = hash_password(password)
        config.save_users()
        logger.info('admin page - user "%s" saved', username)
    return _back_to_console(config)


async def delete_user(request: Request) -> Response:
    if denied := _require_admin(request, "delete user"):
        return denied
    config: ConfigStore = request.app.state.config
    username = _form_value(await request.form(), "delete_user_usr")
    if username in config.users:
        del config.users[username]
        config.save_users()
        logger.info('admin page - user "%s" deleted', username)
    else:
        logger.warning('delete user: unknown user "%s" ignored', username)
    return _back_to_console(config)


def _permission_path(raw: str) -> str:
    path = normalize_path(raw.strip().replace("\\", "/"))
    if path and not path.startswith("/"):
        path = "/" + path
    return path


def _user_list(form, list_key: str, checkbox_key: str) -> str:
    names = split_user_list(_form_value(form, list_key))
    for value in form.getlist(checkbox_key):
        if isinstance(value, str):
            names.extend(split_user_list(value))
    return ",".join(dict.fromkeys(names))


async def new_permission(request: Request) -> Response:
    if denied := _require_admin(request, "new permission"):
        return denied
    config: ConfigStore = request.app.state.config
    form = await request.form()
    path = _permission_path(_form_value(form, "new_perm_path"))
    user_list = _user_list(form, "new_perm_userlist", "new_perm_user")
    if path and user_list:
        # An existing path gets the new user list.
        config.permissions[path] = user_list
        config.save_permissions()
        logger.info("admin page - %s is private for %s", path, user_list)
    else:
        logger.warning("new permission: path %r with users %r ignored", path, user_list)
    return _back_to_console(config)


async def change_permission(request: Request) -> Response:
    if denied := _require_admin(request, "change permission"):
        return denied
    config: ConfigStore = request.app.state.config
    form = await request.form()
    path = _form_value(form, "change_perm_path")
    user_list = _user_list(form, "change_perm_userlist", "change_perm_user")
    if path in config.permissions and user_list:
        config.permissions[path] = user_list
        config.save_permissions()
        logger.info("admin page - %s user list changed to %s", path, user_list)
    else:
        logger.warning("change permission: path %r with users %r ignored", path, user_list)
    return _back_to_console(config)


async def delete_permission(request: Request) -> Response:
    if denied := _require_admin(request, "delete permission"):
        return denied
    config: ConfigStore = request.app.state.config
    path = _form_value(await request.form(), "delete_perm_path")
    if path in config.permissions:
        del config.permissions[path]
        config.save_permissions()
        logger.info("admin page - %s is public again", path)
    else:
        logger.warning("delete permission: unknown path %r ignored", path)
    return _back_to_console(config)


ADMIN_ACTIONS: dict[str, AdminAction] = {
    "save_config": save_config,
    "change_password": change_password,
    "new_user": new_user,
    "delete_user": delete_user,
    "new_perm_form": new_permission_form,
    "new_perm": new_permission,
    "change_perm": change_permission,
    "delete_perm": delete_permission,
}
