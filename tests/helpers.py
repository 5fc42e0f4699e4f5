"""
tests/helpers.py -- Credentials and request shortcuts shared by the API tests.

Kept out of conftest.py so test modules can import them by name.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1n!Password"
USER_PASSWORD = "Us3r!Password"


def login(client: TestClient, email: str, password: str):
    """POST /auth/login with a clean cookie jar; return the response."""
    client.cookies.clear()
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def register(client: TestClient, email: str, password: str = USER_PASSWORD, **extra):
    body = {"email": email, "password": password, "first_name": "Test", "last_name": "User"}
    body.update(extra)
    return client.post("/api/v1/auth/register", json=body)
