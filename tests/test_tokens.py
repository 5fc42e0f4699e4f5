"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - bcrypt hash / verify, malformed hashes never verify
  - access token claims (sub, iss, aud, roles, exp = iat + TTL)
  - decode rejects wrong audience, wrong issuer, wrong key, expired tokens
  - verify_exp=False accepts an expired token that is otherwise valid
  - refresh tokens: random, cookie-safe, expiry = issuance + TTL
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth.models import ADMIN, USER, Account
from auth.tokens import (
    create_access_token,
    create_refresh_token,
    decode_access_token,
    hash_password,
    role_claims,
    verify_password,
)
from core.config import get_settings


def _account() -> Account:
    return Account(
        id="u_test",
        email="jane@example.com",
        username="jane@example.com",
        first_name="Jane",
        last_name="Doe",
        password_hash=hash_password("Secr3t!pass"),
        created_at=datetime.now(timezone.utc),
    )


class TestPasswords:
    def test_hash_then_verify(self):
        hashed = hash_password("Secr3t!pass")
        assert hashed != "Secr3t!pass"
        assert verify_password("Secr3t!pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestRoleClaims:
    def test_user_always_present(self):
        assert role_claims([]) == [USER]

    def test_admin_added_only_when_held(self):
        assert role_claims([ADMIN, USER]) == [USER, ADMIN]
        assert role_claims(["Auditor"]) == [USER]


class TestAccessToken:
    def test_claims(self):
        settings = get_settings()
        issued = create_access_token(_account(), [USER, ADMIN], settings)
        payload = decode_access_token(issued.value, settings)
        assert payload is not None
        assert payload["sub"] == "u_test"
        assert payload["iss"] == settings.jwt_issuer
        assert payload["aud"] == settings.jwt_audience
        assert payload["email"] == "jane@example.com"
        assert payload["preferred_username"] == "jane@example.com"
        assert payload["name"] == "Jane Doe"
        assert payload["roles"] == [USER, ADMIN]
        assert payload["jti"]

    def test_expiry_is_issuance_plus_ttl(self):
        settings = get_settings()
        now = datetime.now(timezone.utc).replace(microsecond=0)
        issued = create_access_token(_account(), [USER], settings, now=now)
        assert issued.expires_at == now + timedelta(minutes=settings.access_token_expire_minutes)
        payload = decode_access_token(issued.value, settings)
        assert payload["exp"] - payload["iat"] == settings.access_token_expire_minutes * 60

    def test_each_token_has_unique_jti(self):
        a = decode_access_token(create_access_token(_account(), [USER]).value)
        b = decode_access_token(create_access_token(_account(), [USER]).value)
        assert a["jti"] != b["jti"]

    def test_wrong_audience_rejected(self):
        settings = get_settings()
        other = settings.model_copy(update={"jwt_audience": "someone-else"})
        token = create_access_token(_account(), [USER], other).value
        assert decode_access_token(token, settings) is None

    def test_wrong_issuer_rejected(self):
        settings = get_settings()
        other = settings.model_copy(update={"jwt_issuer": "rogue"})
        token = create_access_token(_account(), [USER], other).value
        assert decode_access_token(token, settings) is None

    def test_wrong_key_rejected(self):
        settings = get_settings()
        other = settings.model_copy(update={"secret_key": "x" * 64})
        token = create_access_token(_account(), [USER], other).value
        assert decode_access_token(token, settings) is None

    def test_garbage_rejected(self):
        assert decode_access_token("not.a.jwt") is None

    def test_missing_sub_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"iss": settings.jwt_issuer, "aud": settings.jwt_audience},
            settings.secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token, settings) is None

    def test_expired_rejected_unless_expiry_ignored(self):
        settings = get_settings()
        long_ago = datetime.now(timezone.utc) - timedelta(days=1)
        token = create_access_token(_account(), [USER], settings, now=long_ago).value
        assert decode_access_token(token, settings) is None
        payload = decode_access_token(token, settings, verify_exp=False)
        assert payload is not None
        assert payload["sub"] == "u_test"

    def test_expiry_ignored_still_checks_signature(self):
        settings = get_settings()
        other = settings.model_copy(update={"secret_key": "y" * 64})
        long_ago = datetime.now(timezone.utc) - timedelta(days=1)
        token = create_access_token(_account(), [USER], other, now=long_ago).value
        assert decode_access_token(token, settings, verify_exp=False) is None


class TestRefreshToken:
    def test_expiry_is_issuance_plus_ttl(self):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        issued = create_refresh_token(settings, now=now)
        assert issued.expires_at == now + timedelta(days=settings.refresh_token_expire_days)

    def test_random_and_long(self):
        a = create_refresh_token().value
        b = create_refresh_token().value
        assert a != b
        # 64 random bytes -> 86 URL-safe base64 characters
        assert len(a) >= 86

    def test_cookie_safe_alphabet(self):
        value = create_refresh_token().value
        assert not set(value) & set('+/=;," \\')
