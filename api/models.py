"""
API request and response models for AuthKeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Validation rules live here so malformed payloads never reach the services:
  - names: 2..50 characters
  - email: RFC-valid address (EmailStr), at most 50 characters where it is stored
  - password policy: 8..72 characters, at least one digit, one lowercase,
    one uppercase and one non-alphanumeric character. 72 is bcrypt's limit.
  - date of birth: strictly in the past
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from auth.models import Account, AccountWithRoles, Page, Role

# ---------------------------------------------------------------------------
# Shared validators
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 72

_PASSWORD_RULES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"[0-9]"), "must contain at least one digit."),
    (re.compile(r"[^a-zA-Z0-9]"), "must contain at least one non-alphanumeric character."),
    (re.compile(r"[a-z]"), "must contain at least one lowercase letter."),
    (re.compile(r"[A-Z]"), "must contain at least one uppercase letter."),
)


def check_password_policy(value: str) -> str:
    """Raise ValueError listing every rule the password breaks."""
    problems = [f"Password {msg}" for pattern, msg in _PASSWORD_RULES if not pattern.search(value)]
    if problems:
        raise ValueError(" ".join(problems))
    return value


EMAIL_MAX_LENGTH = 50


def check_email_length(value: str) -> str:
    if len(value) > EMAIL_MAX_LENGTH:
        raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters")
    return value


def check_date_of_birth(value: Optional[date]) -> Optional[date]:
    if value is not None and value >= date.today():
        raise ValueError("Date of birth must be in the past")
    return value


_Name = Field(min_length=2, max_length=50)
_Password = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = _Name
    last_name: str = _Name
    email: EmailStr
    password: str = _Password
    date_of_birth: Optional[date] = None

    @field_validator("email")
    @classmethod
    def email_length(cls, value: str) -> str:
        return check_email_length(value)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return check_password_policy(value)

    @field_validator("date_of_birth")
    @classmethod
    def dob_in_past(cls, value: Optional[date]) -> Optional[date]:
        return check_date_of_birth(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No password policy here: policy is enforced when a password is set, and
    a login must not reveal which rule an old password would break.
    """

    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Profile requests
# ---------------------------------------------------------------------------


class UpdateProfileRequest(BaseModel):
    """Request body for PUT /api/v1/profile. Null fields keep their value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    date_of_birth: Optional[date] = None

    @field_validator("date_of_birth")
    @classmethod
    def dob_in_past(cls, value: Optional[date]) -> Optional[date]:
        return check_date_of_birth(value)


class ChangeEmailRequest(BaseModel):
    new_email: EmailStr

    @field_validator("new_email")
    @classmethod
    def email_length(cls, value: str) -> str:
        return check_email_length(value)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = _Password

    @field_validator("new_password")
    @classmethod
    def new_password_policy(cls, value: str) -> str:
        return check_password_policy(value)

    @model_validator(mode="after")
    def passwords_differ(self) -> "ChangePasswordRequest":
        if self.new_password.lower() == self.current_password.lower():
            raise ValueError("New password cannot be the same as the old one.")
        return self


# ---------------------------------------------------------------------------
# Admin requests
# ---------------------------------------------------------------------------


class ResetPasswordRequest(BaseModel):
    """Request body for PUT /api/v1/admin/user/reset-password."""

    email: EmailStr
    new_password: str = _Password

    @field_validator("new_password")
    @classmethod
    def new_password_policy(cls, value: str) -> str:
        return check_password_policy(value)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an account. Credentials and tokens are never included."""

    id: str
    first_name: str
    last_name: str
    email: str
    username: str
    created_at: datetime
    date_of_birth: Optional[date] = None
    is_deleted: bool
    is_deactivated: bool

    @classmethod
    def from_account(cls, account: Account) -> "UserResponse":
        return cls(
            id=account.id,
            first_name=account.first_name,
            last_name=account.last_name,
            email=account.email,
            username=account.username,
            created_at=account.created_at,
            date_of_birth=account.date_of_birth,
            is_deleted=account.is_deleted,
            is_deactivated=account.is_deactivated,
        )


class UserWithRolesResponse(UserResponse):
    roles: list[str]

    @classmethod
    def from_domain(cls, found: AccountWithRoles) -> "UserWithRolesResponse":
        base = UserResponse.from_account(found.account).model_dump()
        return cls(**base, roles=list(found.roles))


class RoleResponse(BaseModel):
    id: str
    name: str
    normalized_name: str

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(id=role.id, name=role.name, normalized_name=role.normalized_name)


class _CollectionFields(BaseModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool

    @staticmethod
    def page_fields(page: Page) -> dict:
        return {
            "page": page.page,
            "page_size": page.page_size,
            "total_count": page.total_count,
            "total_pages": page.total_pages,
            "has_previous_page": page.has_previous_page,
            "has_next_page": page.has_next_page,
        }


class UsersCollectionResponse(_CollectionFields):
    items: list[UserWithRolesResponse]

    @classmethod
    def from_page(cls, page: Page[AccountWithRoles]) -> "UsersCollectionResponse":
        return cls(items=[UserWithRolesResponse.from_domain(i) for i in page.items], **cls.page_fields(page))


class RolesCollectionResponse(_CollectionFields):
    items: list[RoleResponse]

    @classmethod
    def from_page(cls, page: Page[Role]) -> "RolesCollectionResponse":
        return cls(items=[RoleResponse.from_role(r) for r in page.items], **cls.page_fields(page))


class MessageResponse(BaseModel):
    message: str


class ProblemDetails(BaseModel):
    """RFC 7807-style error document returned by every failing request."""

    type: str = "about:blank"
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    request_id: Optional[str] = None
    errors: Optional[dict[str, list[str]]] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]
