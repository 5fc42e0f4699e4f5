"""
api/routes/v1/profile.py -- Self-service endpoints for the signed-in account.

Routes:
  GET /api/v1/profile                   -- current account
  PUT /api/v1/profile                   -- update names / date of birth (null = keep)
  PUT /api/v1/profile/change-email      -- new email; username follows
  PUT /api/v1/profile/change-password   -- requires the current password
  PUT /api/v1/profile/deactivate        -- Forbidden for admins
  PUT /api/v1/profile/reactivate
  PUT /api/v1/profile/delete            -- soft delete; Forbidden for admins

Every route requires an access token (router-level dependency).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI

from api.models import ChangeEmailRequest, ChangePasswordRequest, UpdateProfileRequest, UserResponse
from api.problems import raise_for
from auth.dependencies import get_current_account, get_profiles
from auth.models import Account
from auth.profile import ProfileService
from core.errors import Failure, Outcome

router = APIRouter(prefix="/profile", tags=["Profile"], dependencies=[Depends(get_current_account)])


def _respond(outcome: Outcome[Account]) -> UserResponse:
    if isinstance(outcome, Failure):
        raise_for(outcome)
    return UserResponse.from_account(outcome)


@router.get("", response_model=UserResponse)
def get_profile(account: Account = Depends(get_current_account)) -> UserResponse:
    return UserResponse.from_account(account)


@router.put("", response_model=UserResponse)
def update_profile(
    body: UpdateProfileRequest,
    account: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profiles),
) -> UserResponse:
    return _respond(
        profiles.update(
            account,
            first_name=body.first_name,
            last_name=body.last_name,
            date_of_birth=body.date_of_birth,
        )
    )


@router.put("/change-email", response_model=UserResponse)
def change_email(
    body: ChangeEmailRequest,
    account: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profiles),
) -> UserResponse:
    """Change the login email. Existing tokens keep working until they expire."""
    return _respond(profiles.change_email(account, body.new_email))


@router.put("/change-password", response_model=UserResponse)
def change_password(
    body: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profiles),
) -> UserResponse:
    return _respond(profiles.change_password(account, body.current_password, body.new_password))


@router.put("/deactivate", response_model=UserResponse)
def deactivate(
    account: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profiles),
) -> UserResponse:
    return _respond(profiles.deactivate(account))


@router.put("/reactivate", response_model=UserResponse)
def reactivate(
    account: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profiles),
) -> UserResponse:
    return _respond(profiles.reactivate(account))


@router.put("/delete", response_model=UserResponse)
def soft_delete(
    account: Account = Depends(get_current_account),
    profiles: ProfileService = Depends(get_profiles),
) -> UserResponse:
    return _respond(profiles.soft_delete(account))


def register(app: FastAPI) -> None:
    app.include_router(router, prefix="/api/v1")
