"""
api/main.py -- FastAPI application entry point for piccolo-share.

Run with:      python main.py            (reads the configured HTTP port)
               uvicorn asgi:app --port 8080

Middleware (outermost to innermost):
  1. log_requests    -- one log line per request with latency
  2. session_cookie  -- issues the msessionid cookie after the handler ran

Lifespan builds the three pieces of shared state from Settings:
  app.state.config    ConfigStore      persisted parameters, users, permissions
  app.state.sessions  SessionStore     cookie sessions (memory only)
  app.state.guard     BruteForceGuard  failed logins per IP (memory only)
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from auth.bruteforce import BruteForceGuard
from auth.sessions import SessionStore
from core.config import get_settings
from core.store import ConfigStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("piccolo.api")

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load the configuration and create the in-memory stores.

    A broken configuration raises ConfigError here and the server does not
    start. main.py validates the configuration before calling uvicorn, so in
    normal use this only fails when the files change in between.
    """
    settings = get_settings()
    app.state.config = ConfigStore.load(settings.config_dir)
    app.state.sessions = SessionStore(settings.session_lifetime)
    app.state.guard = BruteForceGuard(settings.ban_window, settings.ban_threshold)
    logger.info(
        "piccolo-share %s starting (root %s, admin path /%s)",
        __version__,
        app.state.config.root_directory,
        app.state.config.admin_path,
    )

    yield

    if settings.debug:
        logger.debug("sessions at shutdown:\n%s", app.state.sessions.describe())
        logger.debug("failed logins at shutdown:\n%s", app.state.guard.describe())
    logger.info("piccolo-share shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="piccolo-share",
    description="Small personal web file server with private directories.",
    version=__version__,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# Attach the shared limiter to app.state. The @limiter.limit decorator on the
# login route finds it there by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Session cookie middleware
#
# Handlers never touch the cookie directly. auth.dependencies.get_session()
# leaves the handle on request.state.session; once the handler has returned,
# the handle writes the cookie if save() was called.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def session_cookie(request: Request, call_next):
    request.state.session = None
    response = await call_next(request)
    handle = request.state.session
    if handle is not None:
        handle.apply_cookie(response, secure=get_settings().secure_cookies)
    return response


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Registered last so it is the outermost layer and times the whole stack.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# Web routes are included by asgi.py, not here.

# ---------------------------------------------------------------------------
# Exception handlers
#
# Answers are short fixed texts. Nothing from the exception reaches the
# client; detail goes to the log.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Return 429 when the login request ceiling is exceeded."""
    logger.warning(
        "rate limit exceeded on %s by %s",
        request.url.path,
        request.client.host if request.client else "unknown",
    )
    response = PlainTextResponse("too many requests; try again later", status_code=429)
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    return PlainTextResponse(f"error {exc.status_code}", status_code=exc.status_code)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return PlainTextResponse("internal error, contact the system administrator", status_code=500)
