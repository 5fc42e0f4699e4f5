"""
auth/tokens.py -- Password hashing, access-token JWTs, and refresh-token values.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY and
       carry sub (account id), iss, aud, a unique jti, email, display name and
       role claims. Verification checks signature, issuer, audience and expiry
       and returns None on any failure -- the route layer turns that into 401.

  Refresh tokens: 64 random bytes from the secrets module, URL-safe base64
       without padding, so the value never needs cookie quoting.
       They carry no structure or claims; the account row is the only place
       that gives them meaning, so revoking is a single column update.

  Passwords: bcrypt, used directly (no passlib wrapper). The _DUMMY_HASH
       constant lets the login path run one bcrypt comparison even when the
       email is unknown, so response time does not reveal which emails exist.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import ADMIN, USER, IssuedToken
from core.config import Settings, get_settings

if TYPE_CHECKING:
    from auth.models import Account

logger = logging.getLogger("authkeeper.auth")

_ALGORITHM = "HS256"
_REFRESH_TOKEN_BYTES = 64
# bcrypt ignores everything past 72 bytes; newer releases raise instead.
_BCRYPT_MAX_BYTES = 72


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    The API layer caps passwords at 72 characters; multi-byte input can still
    exceed 72 bytes, so the encoded value is clipped before hashing.
    """
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store: treat as a mismatch, never as a match.
        logger.warning("Stored password hash could not be parsed")
        return False


# Computed once at module load so the first failed login is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("authkeeper_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt comparison against a throwaway hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Access tokens (JWT)
# ---------------------------------------------------------------------------


def role_claims(roles: list[str]) -> list[str]:
    """Every account carries the base role; Admin only when currently held."""
    claims = [USER]
    if ADMIN in roles:
        claims.append(ADMIN)
    return claims


def create_access_token(
    account: Account,
    roles: list[str],
    settings: Settings | None = None,
    now: datetime | None = None,
) -> IssuedToken:
    """Encode a signed, time-limited JWT describing the account.

    Args:
        account:  The authenticated account.
        roles:    Role names the account holds right now (from RoleStore).
        settings: Override for tests; defaults to get_settings().
        now:      Issuance instant; defaults to the current UTC time.
    """
    settings = settings or get_settings()
    issued_at = now or _utcnow()
    expires_at = issued_at + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": account.id,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "jti": str(uuid.uuid4()),
        "email": account.email,
        "preferred_username": account.username or account.email,
        "name": account.display_name,
        "roles": role_claims(roles),
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)
    return IssuedToken(value=token, expires_at=expires_at)


def decode_access_token(
    token: str,
    settings: Settings | None = None,
    verify_exp: bool = True,
) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    verify_exp=False is reserved for logout: a stale token still proves who
    the caller was, as long as signature, issuer and audience check out.
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"verify_exp": verify_exp},
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


# ---------------------------------------------------------------------------
# Refresh tokens (opaque)
# ---------------------------------------------------------------------------


def create_refresh_token(settings: Settings | None = None, now: datetime | None = None) -> IssuedToken:
    """Generate a 512-bit random refresh token and its expiry."""
    settings = settings or get_settings()
    issued_at = now or _utcnow()
    value = secrets.token_urlsafe(_REFRESH_TOKEN_BYTES)
    return IssuedToken(value=value, expires_at=issued_at + timedelta(days=settings.refresh_token_expire_days))
