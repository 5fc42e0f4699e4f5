"""
api/main.py -- FastAPI application entry point for AuthKeeper.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost; Starlette wraps the last one added
outermost):
  1. request_context       -- request id, access log
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan opens the account/role stores, builds the services onto app.state,
seeds the standard roles and the optional initial admin, and disposes the
engine on shutdown.

Feature routes are not discovered. Each route module exports register(app)
and _FEATURES below lists them in the order they are mounted.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse
from api.problems import problem_response, validation_errors
from api.routes.v1 import admin as admin_routes
from api.routes.v1 import auth as auth_routes
from api.routes.v1 import profile as profile_routes
from auth.admin import AdminService
from auth.bootstrap import ensure_admin_created, ensure_roles_created
from auth.profile import ProfileService
from auth.sessions import SessionManager
from auth.store import AccountStore, RoleStore, open_stores
from core.config import Settings, get_settings

__version__ = "1.0.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authkeeper.api")

# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def attach_services(app: FastAPI, accounts: AccountStore, roles: RoleStore, settings: Settings) -> None:
    """Build the services over the given stores and park them on app.state.

    auth.dependencies reads them back from there. Tests call this from their
    own lifespan with in-memory stores.
    """
    sessions = SessionManager(accounts, roles, settings)
    app.state.accounts = accounts
    app.state.sessions = sessions
    app.state.profiles = ProfileService(accounts, roles)
    app.state.admin = AdminService(accounts, roles, sessions)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores and seed them on startup; dispose the engine on shutdown.

    Roles are seeded before the initial admin because ensure_admin() grants
    both standard roles and RoleStore.add() needs them to exist.
    """
    settings = get_settings()
    logger.info("AuthKeeper API starting up")
    accounts, roles = open_stores(settings.database_url)
    attach_services(app, accounts, roles, settings)
    ensure_roles_created(app.state.sessions)
    ensure_admin_created(app.state.sessions, settings)
    logger.info("Store initialized (%d accounts)", accounts.count())

    yield

    accounts.close()
    logger.info("AuthKeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthKeeper API",
    description="Username/password authentication with rotating refresh tokens, profiles and user administration.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the last call ends up
# outermost. request_context (registered further down) sees every request,
# including the ones TrustedHost rejects.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)


def _cors_options(settings: Settings) -> dict:
    """Translate the CORS settings into CORSMiddleware keyword arguments.

    Browsers refuse credentialed requests against a wildcard origin, so
    credentials are only allowed when origins are listed explicitly.
    """
    if settings.cors_allow_all:
        return {"allow_origins": ["*"], "allow_methods": ["*"], "allow_headers": ["*"]}
    origins = settings.cors_allowed_origins or ["*"]
    return {
        "allow_origins": origins,
        "allow_methods": settings.cors_allowed_methods or ["*"],
        "allow_headers": ["Content-Type", "Authorization", "X-Request-ID"],
        "allow_credentials": origins != ["*"],
    }


app.add_middleware(CORSMiddleware, max_age=3600, **_cors_options(_settings))

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request context middleware
#
# Every request gets an id: the caller's X-Request-ID if present, else a new
# one. It is stored on request.state for the problem documents, echoed on
# the response and written to the access log line.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        # The 500 problem is rendered outside this middleware; it carries the
        # request id itself (api.problems).
        logger.info(
            "%s %s 500 %.1fms %s rid=%s",
            request.method,
            request.url.path,
            (time.perf_counter() - start) * 1000,
            request.client.host if request.client else "unknown",
            request_id,
        )
        raise
    ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "%s %s %d %.1fms %s rid=%s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        request_id,
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

_FEATURES = (
    auth_routes.register,
    profile_routes.register,
    admin_routes.register,
)

for _register in _FEATURES:
    _register(app)


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers render the same problem document (api.problems) so clients
# can parse errors uniformly without choosing a schema per status code.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    Plain def: SlowAPIMiddleware calls this handler directly, outside the
    exception middleware.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    return problem_response(
        request,
        429,
        detail=f"Too many requests. Limit: {exc.detail}",
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with the failing fields and their messages."""
    return problem_response(
        request,
        422,
        detail="One or more validation errors occurred.",
        errors=validation_errors(exc.errors()),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render route-raised and routing (404/405) HTTP exceptions."""
    return problem_response(request, exc.status_code, detail=str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return problem_response(request, 500)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a feature module) so it is always
# reachable. No rate limit: probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    try:
        request.app.state.accounts.count()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": database})
