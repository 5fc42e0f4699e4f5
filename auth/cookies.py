"""
auth/cookies.py -- Token cookies on the HTTP boundary.

Both tokens travel as cookies with the same attribute set:
  httponly=True       JS cannot read them (XSS mitigation).
  secure=True         only sent over HTTPS.
  samesite="strict"   never attached to cross-site requests (CSRF mitigation).
  path="/"            one scope for writing and deleting.
  expires             the token's own expiry, so cookie and token die together.

Deleting must repeat name, path and attributes; browsers treat a cookie with a
different path as a different cookie and would keep the original.
"""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import Response

from auth.models import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, IssuedToken, TokenPair

_COOKIE_PATH = "/"
_SAMESITE = "strict"


def write_token_cookie(response: Response, name: str, token: IssuedToken) -> None:
    response.set_cookie(
        name,
        value=token.value,
        expires=token.expires_at,
        path=_COOKIE_PATH,
        secure=True,
        httponly=True,
        samesite=_SAMESITE,
    )


def delete_token_cookie(response: Response, name: str) -> None:
    response.delete_cookie(
        name,
        path=_COOKIE_PATH,
        secure=True,
        httponly=True,
        samesite=_SAMESITE,
    )


def write_session_cookies(response: Response, pair: TokenPair) -> None:
    write_token_cookie(response, ACCESS_TOKEN_COOKIE, pair.access)
    write_token_cookie(response, REFRESH_TOKEN_COOKIE, pair.refresh)


def clear_session_cookies(response: Response) -> None:
    delete_token_cookie(response, ACCESS_TOKEN_COOKIE)
    delete_token_cookie(response, REFRESH_TOKEN_COOKIE)


def read_access_token(request: Request) -> str | None:
    """Access token from the cookie, falling back to an Authorization: Bearer header."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def read_refresh_token(request: Request) -> str | None:
    return request.cookies.get(REFRESH_TOKEN_COOKIE) or None
