"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access token is read from the ACCESS_TOKEN cookie (browser clients) or
an Authorization: Bearer header (API clients); both converge on an Account.

get_current_account() raises HTTP 401 if the request is not authenticated.
require_admin() wraps it and raises HTTP 403 unless the account currently
holds the Admin role. The role is read from the store on every request, so a
demotion takes effect immediately rather than when the token expires.

Services are created once in the lifespan and parked on app.state; the
accessors below are the only code that reaches into app.state for them.

Layer rule: this module may import from fastapi because it is part of the
dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from auth.admin import AdminService
from auth.cookies import read_access_token
from auth.models import ADMIN, Account
from auth.profile import ProfileService
from auth.sessions import SessionManager
from auth.tokens import decode_access_token


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_profiles(request: Request) -> ProfileService:
    return request.app.state.profiles


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin


def try_get_current_account(request: Request) -> Account | None:
    """Return the authenticated Account, or None. Never raises."""
    token = read_access_token(request)
    if not token:
        return None
    sessions: SessionManager = request.app.state.sessions
    payload = decode_access_token(token, sessions.settings)
    if payload is None:
        return None
    return sessions.accounts.find_by_id(payload["sub"])


def get_current_account(request: Request) -> Account:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(status_code=401, detail="Authentication required.")
    return account


def require_admin(request: Request, account: Account = Depends(get_current_account)) -> Account:
    """Require the Admin role. 401 if unauthenticated, 403 if not admin."""
    if ADMIN not in request.app.state.sessions.roles.list_for_account(account.id):
        raise HTTPException(status_code=403, detail="Admin access required.")
    return account
