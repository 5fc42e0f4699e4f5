"""
auth/sessions.py -- Session lifecycle: register, login, refresh, revoke, logout.

State machine over one account's refresh-token slot:

    Anonymous --login--> Authenticated --logout / revoke--> Anonymous
                           |    ^
                           +----+ refresh (rotates both tokens)

All session state lives in the account row. SessionManager holds only its
collaborators and is safe to share between requests.

Refresh rotation is one-time use. Every successful refresh replaces the
stored refresh token through AccountStore.swap_refresh_token(), a
compare-and-swap keyed on the presented value: a replayed or concurrently
used token cannot match the row a second time.

Failures are returned as core.errors.Failure values, never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError

from auth.models import USER, Account, TokenPair
from auth.store import AccountStore, RoleStore, new_account_id
from auth.tokens import (
    burn_password_check,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    hash_password,
)
from core.config import Settings, get_settings
from core.errors import Outcome, conflict, unauthorized

logger = logging.getLogger("authkeeper.sessions")

BAD_CREDENTIALS = "Incorrect email or password"
SESSION_ENDED = "Refresh token is revoked or expired"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Issues, rotates and revokes the access/refresh token pair of an account."""

    def __init__(
        self,
        accounts: AccountStore,
        roles: RoleStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.accounts = accounts
        self.roles = roles
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Registration and credentials
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        date_of_birth: date | None = None,
    ) -> Outcome[Account]:
        """Create an account holding the base role. No tokens are issued."""
        if self.accounts.find_by_email(email) is not None:
            return conflict("A user with this email already exists")

        account = Account(
            id=new_account_id(),
            email=email,
            username=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=hash_password(password),
            created_at=self.clock(),
            date_of_birth=date_of_birth,
        )
        try:
            self.accounts.create(account)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email.
            return conflict("A user with this email already exists")
        self.roles.add(account.id, USER)
        logger.info("Registered account %s", account.id)
        return account

    def authenticate(self, email: str, password: str) -> Account | None:
        """Return the account if the credentials match, else None.

        Always runs bcrypt whether or not the email exists, so response time
        does not reveal which emails are registered.
        """
        account = self.accounts.find_by_email(email)
        if account is None:
            burn_password_check(password)
            return None
        if not self.accounts.verify_password(account, password):
            return None
        return account

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    def mint(self, account: Account) -> TokenPair:
        """Build a fresh pair for the account without persisting anything."""
        now = self.clock()
        access = create_access_token(account, self.roles.list_for_account(account.id), self.settings, now=now)
        refresh = create_refresh_token(self.settings, now=now)
        return TokenPair(access=access, refresh=refresh)

    def issue(self, account: Account) -> TokenPair:
        """Mint a pair and store its refresh half, overwriting any previous session."""
        pair = self.mint(account)
        self.accounts.set_refresh_token(account, pair.refresh)
        return pair

    def login(self, email: str, password: str) -> Outcome[TokenPair]:
        account = self.authenticate(email, password)
        if account is None:
            logger.warning("Failed login attempt")
            return unauthorized(BAD_CREDENTIALS)
        pair = self.issue(account)
        logger.info("Login for account %s", account.id)
        return pair

    def refresh(self, presented: str | None) -> Outcome[TokenPair]:
        """Rotate the pair identified by the presented refresh token.

        Expired or unknown tokens fail without touching stored state.
        """
        if not presented:
            return unauthorized(SESSION_ENDED)
        account = self.accounts.find_by_refresh_token(presented)
        if account is None:
            logger.warning("Refresh with unknown or already rotated token")
            return unauthorized(SESSION_ENDED)
        expires_at = account.refresh_token_expires_at
        if expires_at is None or expires_at <= self.clock():
            logger.info("Refresh with expired token for account %s", account.id)
            return unauthorized(SESSION_ENDED)

        pair = self.mint(account)
        if not self.accounts.swap_refresh_token(account, presented, pair.refresh):
            logger.warning("Concurrent refresh lost the race for account %s", account.id)
            return unauthorized(SESSION_ENDED)
        return pair

    def revoke(self, account: Account) -> None:
        """Clear the refresh-token pair. Idempotent."""
        self.accounts.set_refresh_token(account, None)

    def logout(self, access_token: str | None, refresh_token: str | None) -> Account | None:
        """End the session of whoever the presented tokens belong to.

        The access token is accepted even when expired (signature, issuer and
        audience are still checked); the refresh cookie is the fallback.
        Returns the account that was logged out, or None if neither token
        identified one. Never fails.
        """
        account = None
        if access_token:
            payload = decode_access_token(access_token, self.settings, verify_exp=False)
            if payload is not None:
                account = self.accounts.find_by_id(payload["sub"])
        if account is None and refresh_token:
            account = self.accounts.find_by_refresh_token(refresh_token)
        if account is None:
            return None
        self.revoke(account)
        logger.info("Logout for account %s", account.id)
        return account
