"""
tests/conftest.py -- Shared test fixtures for AuthKeeper.

This module provides:
  - _make_test_stores(): named shared-memory stores for integration tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores / sessions / profiles / admin_service: fresh in-memory unit fixtures
  - api_client: module-scoped TestClient plus a seeded admin account

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/auth/core import:
  DEBUG            so get_settings() auto-generates SECRET_KEY
  ALLOWED_HOSTS    TestClient sends Host: testserver
  LOGIN_RATE_LIMIT high enough that login-heavy modules never hit 429

The client talks https://testserver because both token cookies are Secure
and the cookie jar only sends Secure cookies back over https.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, attach_services
from auth.admin import AdminService
from auth.bootstrap import ensure_admin, ensure_roles_created
from auth.models import STANDARD_ROLES, Account
from auth.profile import ProfileService
from auth.sessions import SessionManager
from auth.store import AccountStore, RoleStore, open_stores
from core.config import get_settings
from tests.helpers import ADMIN_EMAIL, ADMIN_PASSWORD, USER_PASSWORD

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[AccountStore, RoleStore]:
    """Create isolated named shared-memory stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth_routes', 'admin_routes').
    """
    return open_stores(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(accounts: AccountStore, roles: RoleStore):
    """Return an async context manager that replaces the real lifespan.

    Builds the real services over the test stores, so routes exercise the
    same code paths as production without touching authkeeper.db.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, accounts, roles, get_settings())
        ensure_roles_created(app.state.sessions)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures -- a fresh in-memory store per test
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[AccountStore, RoleStore], None, None]:
    accounts, roles = open_stores("sqlite:///:memory:")
    roles.ensure_roles(STANDARD_ROLES)
    yield accounts, roles
    accounts.close()


@pytest.fixture
def sessions(stores) -> SessionManager:
    accounts, roles = stores
    return SessionManager(accounts, roles, get_settings())


@pytest.fixture
def profiles(stores) -> ProfileService:
    accounts, roles = stores
    return ProfileService(accounts, roles)


@pytest.fixture
def admin_service(stores, sessions) -> AdminService:
    accounts, roles = stores
    return AdminService(accounts, roles, sessions)


@pytest.fixture
def make_account(sessions):
    """Factory: register an account and return it."""

    def _make(email: str | None = None, password: str = USER_PASSWORD, **kwargs) -> Account:
        email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
        created = sessions.register(email, password, kwargs.pop("first_name", "Test"), kwargs.pop("last_name", "User"))
        assert isinstance(created, Account), created
        return created

    return _make


# ---------------------------------------------------------------------------
# Module-scoped client -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, Account], None, None]:
    """Yield (client, admin_account) for API integration tests.

    Each test module gets its own database, named after the module. The
    admin (ADMIN_EMAIL / ADMIN_PASSWORD) exists before the client starts.
    """
    accounts, roles = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    seed = SessionManager(accounts, roles, get_settings())
    ensure_roles_created(seed)
    admin = ensure_admin(seed, ADMIN_EMAIL, ADMIN_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(accounts, roles)

    with TestClient(app, base_url="https://testserver", raise_server_exceptions=True) as client:
        yield client, admin

    accounts.close()
