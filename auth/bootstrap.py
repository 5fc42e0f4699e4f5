"""
auth/bootstrap.py -- First-run seeding: standard roles and the initial admin.

Both functions are idempotent and run on every startup (api/main.py lifespan)
and from the management CLI (main.py).

Admin emails are checked with the same EmailStr rules the login form applies.
An address the login form would reject (e.g. a special-use domain such as
.test or .local) is refused here, otherwise the seeded admin could never
sign in.
"""

from __future__ import annotations

import logging

from pydantic import EmailStr, TypeAdapter, ValidationError

from auth.models import ADMIN, STANDARD_ROLES, USER, Account
from auth.sessions import SessionManager
from core.config import Settings

logger = logging.getLogger("authkeeper.bootstrap")

_LOGIN_EMAIL = TypeAdapter(EmailStr)


def ensure_roles_created(sessions: SessionManager) -> None:
    created = sessions.roles.ensure_roles(STANDARD_ROLES)
    for name in created:
        logger.info("Created role %s", name)


def login_email(email: str) -> str | None:
    """Return the normalized address, or None if the login form would reject it."""
    try:
        return _LOGIN_EMAIL.validate_python(email.strip())
    except ValidationError as e:
        logger.error("Admin email %r cannot be used to log in: %s", email, e.errors()[0]["msg"])
        return None


def ensure_admin(sessions: SessionManager, email: str, password: str) -> Account | None:
    """Create an admin account, or grant missing roles to an existing one.

    Returns the admin account, or None if the email is not a valid login
    email or the account could not be created.
    """
    normalized = login_email(email)
    if normalized is None:
        return None
    account = sessions.accounts.find_by_email(normalized)
    if account is None:
        created = sessions.register(normalized, password, "System", "Administrator")
        if not isinstance(created, Account):
            logger.error("Failed to create initial admin %s: %s", normalized, created.detail)
            return None
        account = created
        logger.info("Seeded admin user: %s", normalized)
    for role in (USER, ADMIN):
        sessions.roles.add(account.id, role)
    return account


def ensure_admin_created(sessions: SessionManager, settings: Settings) -> Account | None:
    """Seed the configured initial admin when ADD_INITIAL_ADMIN is set."""
    if not settings.add_initial_admin:
        return None
    email = settings.initial_admin_email.strip()
    password = settings.initial_admin_password
    if not email or not password.strip():
        logger.warning("ADD_INITIAL_ADMIN is set but INITIAL_ADMIN_EMAIL or INITIAL_ADMIN_PASSWORD is blank")
        return None
    return ensure_admin(sessions, email, password)
