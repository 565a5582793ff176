"""
web/browse.py -- Directory listings and file downloads under the root.

Order of checks for every browsing request:
  1. identify the user (renews the session cookie)
  2. ?login=spontaneous shows the login form
  3. existence: a missing, unreadable or escaping path waits the penalty
     delay and answers "sorry, nothing found here"
     (the path is then rebuilt from the resolved file, so "//x" and "a/../x"
     are judged as "/x")
  4. privacy: a private path the user is not granted shows the login form,
     with the requested path as the post-login target
  5. directory -> listing, file -> inline text or attachment download

Existence is checked before privacy, so probing for private names costs the
same delay as probing for missing ones.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from pathlib import Path

from fastapi import Request
from fastapi.responses import FileResponse, Response

from auth.access import check_access, child_path, child_visibility, normalize_path
from auth.dependencies import verify_logged_user
from core.config import get_settings
from core.listing import list_directory, logical_path, resolve_resource
from core.store import ConfigStore
from web.templating import (
    NOT_FOUND_MESSAGE,
    nocache_url,
    page_context,
    render_login_form,
    render_message,
    templates,
)

logger = logging.getLogger("piccolo.web")

# Served inline; everything else is an attachment.
INLINE_TYPES: dict[str, str] = {
    ".html": "text/html; charset=utf-8",
    ".htm": "text/html; charset=utf-8",
    ".txt": "text/plain; charset=utf-8",
    ".md": "text/plain; charset=utf-8",
    ".log": "text/plain; charset=utf-8",
}


def parent_path(http_path: str) -> str:
    """Logical parent of a normalized, non-root path ("/" for top level)."""
    index = http_path.rfind("/")
    return http_path[:index] if index > 0 else "/"


async def _not_found(request: Request, http_path: str) -> Response:
    await asyncio.sleep(get_settings().not_found_delay_seconds)
    logger.info('nothing found for "%s"', http_path)
    return render_message(request, NOT_FOUND_MESSAGE, status_code=404)


async def browse(request: Request, request_path: str) -> Response:
    user = verify_logged_user(request)
    http_path = normalize_path("/" + request_path)

    if request.query_params.get("login") == "spontaneous":
        logger.info("login requested by user")
        return render_login_form(request, user, redirect_url=http_path, status_code=200)

    config: ConfigStore = request.app.state.config
    resource = resolve_resource(config.root_directory, http_path)
    logger.debug('browsing "%s" -> "%s" (user "%s")', http_path, resource, user.username)
    if resource is None:
        return await _not_found(request, http_path)
    http_path = logical_path(config.root_directory, resource)
    try:
        is_dir = stat.S_ISDIR(resource.stat().st_mode)
    except OSError:
        return await _not_found(request, http_path)
    if not os.access(resource, os.R_OK):
        return await _not_found(request, http_path)

    decision = check_access(http_path, config.permissions, user.username)
    if decision.denied:
        logger.warning('access denied for user "%s" to %s', user.username, http_path)
        return render_login_form(request, user, redirect_url=http_path)

    if is_dir:
        return _listing(request, user, config, http_path, resource)
    return _download(resource)


def _listing(request: Request, user, config: ConfigStore, http_path: str, resource: Path) -> Response:
    try:
        entries = list_directory(resource)
    except OSError:
        logger.exception("directory browsing error for %s", http_path)
        return render_message(
            request,
            "directory browsing error, contact the system administrator",
            status_code=500,
            user=user,
        )

    directories = []
    files = []
    for entry in entries:
        path = child_path(http_path, entry.name)
        if entry.is_dir:
            visible, private = child_visibility(path, config.permissions, user.username)
            if not visible:
                logger.debug("private directory name %s hidden for anonymous users", entry.name)
                continue
            directories.append({"entry": entry, "href": nocache_url(path), "private": private})
        else:
            files.append({"entry": entry, "href": nocache_url(path)})

    return templates.TemplateResponse(
        request,
        "listing.html",
        page_context(
            request,
            user,
            title=f"Contents of {http_path or '/'}",
            parent_href=nocache_url(parent_path(http_path)) if http_path else None,
            directories=directories,
            files=files,
            total_size=sum(f["entry"].size for f in files),
        ),
    )


def _download(resource: Path) -> Response:
    name = resource.name
    media_type = INLINE_TYPES.get(resource.suffix.lower())
    if media_type is not None:
        logger.info('serving "%s" inline', name)
        return FileResponse(resource, media_type=media_type)
    logger.info('downloading "%s"', name)
    return FileResponse(resource, media_type="application/octet-stream", filename=name)
