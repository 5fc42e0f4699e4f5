"""
api/routes/v1/admin.py -- User administration endpoints (Admin role only).

Routes (single-account operations come in a by-id and a by-email form):
  GET    /api/v1/admin/user/{user_id}              GET    /api/v1/admin/user?email=
  GET    /api/v1/admin/users                       -- paged, searchable
  GET    /api/v1/admin/admins                      -- paged, Admin holders only
  GET    /api/v1/admin/roles                       -- paged, searchable
  PUT    /api/v1/admin/user/promote/{user_id}      PUT    /api/v1/admin/user/promote?email=
  PUT    /api/v1/admin/user/demote/{user_id}       PUT    /api/v1/admin/user/demote?email=
  PUT    /api/v1/admin/user/undelete/{user_id}     PUT    /api/v1/admin/user/undelete?email=
  POST   /api/v1/admin/user/revoke/{user_id}       POST   /api/v1/admin/user/revoke?email=
  PUT    /api/v1/admin/user/reset-password         -- revokes the target's refresh token
  DELETE /api/v1/admin/user/{user_id}              DELETE /api/v1/admin/user?email=   -- 204

Security:
  Router-level require_admin(): 401 without a valid access token, 403 unless
  the account holds Admin right now (checked against the store, not the token).
  Demoting or deleting the last admin is refused by AdminService.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Response

from api.models import (
    ResetPasswordRequest,
    RolesCollectionResponse,
    UsersCollectionResponse,
    UserWithRolesResponse,
)
from api.problems import raise_for
from auth.admin import AccountRef, AdminService
from auth.dependencies import get_admin_service, require_admin
from auth.models import AccountWithRoles, UserQuery
from core.errors import Failure, Outcome

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _respond(outcome: Outcome[AccountWithRoles]) -> UserWithRolesResponse:
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return UserWithRolesResponse.from_domain(outcome)


def _user_query(
    page: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    is_deleted: Optional[bool] = None,
    is_deactivated: Optional[bool] = None,
    order_by_name: bool = False,
) -> UserQuery:
    """Query-string parameters shared by /users and /admins.

    Range checks on page and page_size happen in AdminService so they come
    back as 400 rather than 422.
    """
    return UserQuery(
        page=page,
        page_size=page_size,
        search=search,
        is_deleted=is_deleted,
        is_deactivated=is_deactivated,
        order_by_name=order_by_name,
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


@router.get("/user/{user_id}", response_model=UserWithRolesResponse)
def get_user_by_id(user_id: str, admin: AdminService = Depends(get_admin_service)) -> UserWithRolesResponse:
    return _respond(admin.get_user(AccountRef.by_id(user_id)))


@router.get("/user", response_model=UserWithRolesResponse)
def get_user_by_email(
    email: str = Query(""),
    admin: AdminService = Depends(get_admin_service),
) -> UserWithRolesResponse:
    return _respond(admin.get_user(AccountRef.by_email(email)))


@router.get("/users", response_model=UsersCollectionResponse)
def list_users(
    query: UserQuery = Depends(_user_query),
    admin: AdminService = Depends(get_admin_service),
) -> UsersCollectionResponse:
    outcome = admin.list_users(query)
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return UsersCollectionResponse.from_page(outcome)


@router.get("/admins", response_model=UsersCollectionResponse)
def list_admins(
    query: UserQuery = Depends(_user_query),
    admin: AdminService = Depends(get_admin_service),
) -> UsersCollectionResponse:
    outcome = admin.list_admins(query)
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return UsersCollectionResponse.from_page(outcome)


@router.get("/roles", response_model=RolesCollectionResponse)
def list_roles(
    page: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    order_by_name: bool = False,
    admin: AdminService = Depends(get_admin_service),
) -> RolesCollectionResponse:
    outcome = admin.list_roles(page=page, page_size=page_size, search=search, order_by_name=order_by_name)
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return RolesCollectionResponse.from_page(outcome)


# ---------------------------------------------------------------------------
# Role changes
# ---------------------------------------------------------------------------


@router.put("/user/promote/{user_id}", response_model=UserWithRolesResponse)
def promote_by_id(user_id: str, admin: AdminService = Depends(get_admin_service)) -> UserWithRolesResponse:
    return _respond(admin.promote(AccountRef.by_id(user_id)))


@router.put("/user/promote", response_model=UserWithRolesResponse)
def promote_by_email(
    email: str = Query(""),
    admin: AdminService = Depends(get_admin_service),
) -> UserWithRolesResponse:
    return _respond(admin.promote(AccountRef.by_email(email)))


@router.put("/user/demote/{user_id}", response_model=UserWithRolesResponse)
def demote_by_id(user_id: str, admin: AdminService = Depends(get_admin_service)) -> UserWithRolesResponse:
    return _respond(admin.demote(AccountRef.by_id(user_id)))


@router.put("/user/demote", response_model=UserWithRolesResponse)
def demote_by_email(
    email: str = Query(""),
    admin: AdminService = Depends(get_admin_service),
) -> UserWithRolesResponse:
    return _respond(admin.demote(AccountRef.by_email(email)))


# ---------------------------------------------------------------------------
# Sessions and credentials
# ---------------------------------------------------------------------------


@router.post("/user/revoke/{user_id}", response_model=UserWithRolesResponse)
def revoke_by_id(user_id: str, admin: AdminService = Depends(get_admin_service)) -> UserWithRolesResponse:
    """Clear the account's refresh token. Its current access token lives until expiry."""
    return _respond(admin.revoke(AccountRef.by_id(user_id)))


@router.post("/user/revoke", response_model=UserWithRolesResponse)
def revoke_by_email(
    email: str = Query(""),
    admin: AdminService = Depends(get_admin_service),
) -> UserWithRolesResponse:
    return _respond(admin.revoke(AccountRef.by_email(email)))


@router.put("/user/reset-password", response_model=UserWithRolesResponse)
def reset_password(
    body: ResetPasswordRequest,
    admin: AdminService = Depends(get_admin_service),
) -> UserWithRolesResponse:
    return _respond(admin.reset_password(body.email, body.new_password))


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


@router.put("/user/undelete/{user_id}", response_model=UserWithRolesResponse)
def undelete_by_id(user_id: str, admin: AdminService = Depends(get_admin_service)) -> UserWithRolesResponse:
    return _respond(admin.undelete(AccountRef.by_id(user_id)))


@router.put("/user/undelete", response_model=UserWithRolesResponse)
def undelete_by_email(
    email: str = Query(""),
    admin: AdminService = Depends(get_admin_service),
) -> UserWithRolesResponse:
    return _respond(admin.undelete(AccountRef.by_email(email)))


@router.delete("/user/{user_id}", status_code=204)
def delete_by_id(user_id: str, admin: AdminService = Depends(get_admin_service)) -> Response:
    outcome = admin.delete(AccountRef.by_id(user_id))
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return Response(status_code=204)


@router.delete("/user", status_code=204)
def delete_by_email(
    email: str = Query(""),
    admin: AdminService = Depends(get_admin_service),
) -> Response:
    outcome = admin.delete(AccountRef.by_email(email))
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return Response(status_code=204)


def register(app: FastAPI) -> None:
    app.include_router(router, prefix="/api/v1")
