"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost no logic). Stores and
services do the work; these classes only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Generic, TypeVar

ADMIN = "Admin"
USER = "User"
STANDARD_ROLES: tuple[str, ...] = (ADMIN, USER)

ACCESS_TOKEN_COOKIE = "ACCESS_TOKEN"
REFRESH_TOKEN_COOKIE = "REFRESH_TOKEN"


@dataclass
class Account:
    """A local username/password identity.

    username mirrors email; change_email() keeps them in sync.

    refresh_token / refresh_token_expires_at form one session slot. They are
    populated together on login or refresh and cleared together on logout or
    revocation -- AccountStore.set_refresh_token() is the only writer.
    """

    id: str
    email: str
    username: str
    first_name: str
    last_name: str
    password_hash: str
    created_at: datetime
    date_of_birth: date | None = None
    refresh_token: str | None = None
    refresh_token_expires_at: datetime | None = None
    is_deleted: bool = False  # soft delete
    is_deactivated: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class Role:
    id: str
    name: str
    normalized_name: str


@dataclass(frozen=True)
class IssuedToken:
    """A token value plus the instant it stops being valid (UTC)."""

    value: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken


T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a paginated listing."""

    items: list[T]
    page: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.page_size) if self.page_size else 0

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages


@dataclass
class UserQuery:
    """Filters for admin user listings. Defaults mirror the API defaults.

    is_deleted / is_deactivated: None = either, True/False = only that state.
    """

    page: int = 1
    page_size: int = 10
    search: str | None = None
    is_deleted: bool | None = None
    is_deactivated: bool | None = None
    order_by_name: bool = False
    admins_only: bool = False


@dataclass
class AccountWithRoles:
    account: Account
    roles: list[str] = field(default_factory=list)
