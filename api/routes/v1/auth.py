"""
api/routes/v1/auth.py -- Registration and session endpoints.

Routes:
  POST /api/v1/auth/register   -- create an account (User role); 201
  POST /api/v1/auth/login      -- password login; sets ACCESS_TOKEN + REFRESH_TOKEN cookies
  POST /api/v1/auth/refresh    -- rotate both tokens using the REFRESH_TOKEN cookie
  POST /api/v1/auth/logout     -- revoke the refresh token and clear both cookies; always 200

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT, default 10/minute).
  SessionManager.authenticate() equalizes timing for unknown emails -- never
  inline find_by_email() + verify_password() here.
  Cache-Control: no-store on every response that carries tokens.
  A failed refresh clears both cookies; the client has to log in again.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import LoginRequest, MessageResponse, RegisterRequest, UserResponse
from api.problems import problem_response, raise_for
from auth.cookies import clear_session_cookies, read_access_token, read_refresh_token, write_session_cookies
from auth.dependencies import get_sessions
from auth.sessions import SessionManager
from core.errors import Failure

# Auth policy: every route here is public. Refresh and logout identify the
# account from the cookies they receive, not from a dependency.
router = APIRouter(prefix="/auth", tags=["Auth"])


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/register", response_model=UserResponse, status_code=201)
def register_account(body: RegisterRequest, sessions: SessionManager = Depends(get_sessions)) -> UserResponse:
    """Create an account with the User role. No tokens are issued; log in next."""
    outcome = sessions.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        date_of_birth=body.date_of_birth,
    )
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return UserResponse.from_account(outcome)


@router.post("/login", response_model=MessageResponse)
@limiter.limit(login_limit)
def login(request: Request, body: LoginRequest, sessions: SessionManager = Depends(get_sessions)) -> JSONResponse:
    """Authenticate with email and password; set both token cookies.

    Wrong email and wrong password produce the same 401 so the response does
    not reveal whether the email is registered.
    """
    outcome = sessions.login(body.email, body.password)
    if isinstance(outcome, Failure):
        return _no_store(problem_response(request, outcome.status_code, outcome.detail))
    resp = JSONResponse(content=MessageResponse(message="Login successful.").model_dump())
    write_session_cookies(resp, outcome)
    return _no_store(resp)


@router.post("/refresh", response_model=MessageResponse)
def refresh(request: Request, sessions: SessionManager = Depends(get_sessions)) -> JSONResponse:
    """Exchange the REFRESH_TOKEN cookie for a new access/refresh pair.

    The presented refresh token is single use: after this call it no longer
    matches the account and any replay is rejected.
    """
    outcome = sessions.refresh(read_refresh_token(request))
    if isinstance(outcome, Failure):
        resp = problem_response(request, outcome.status_code, outcome.detail)
        clear_session_cookies(resp)
        return _no_store(resp)
    resp = JSONResponse(content=MessageResponse(message="Tokens refreshed.").model_dump())
    write_session_cookies(resp, outcome)
    return _no_store(resp)


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, sessions: SessionManager = Depends(get_sessions)) -> JSONResponse:
    """Revoke the caller's refresh token and delete both cookies.

    Works with an expired access token: logging out must not require a
    session that is still valid.
    """
    sessions.logout(read_access_token(request), read_refresh_token(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookies(resp)
    return _no_store(resp)


def register(app: FastAPI) -> None:
    app.include_router(router, prefix="/api/v1")
