"""
auth/admin.py -- Administrator operations over any account.

Every single-account operation is addressable by id or by email through an
AccountRef. A blank key is a BadRequest; an unknown account is a NotFound.

Guards:
  Demoting or deleting the last remaining Admin is Forbidden. Without at
  least one admin there is no way back in short of editing the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from auth.models import ADMIN, AccountWithRoles, Page, Role, UserQuery
from auth.sessions import SessionManager
from auth.store import AccountStore, RoleStore
from auth.tokens import hash_password
from core.errors import Outcome, bad_request, forbidden, not_found

logger = logging.getLogger("authkeeper.admin")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class AccountRef:
    """How an admin route names its target account."""

    field: str  # "id" or "email"
    value: str

    @classmethod
    def by_id(cls, value: str) -> "AccountRef":
        return cls("id", value)

    @classmethod
    def by_email(cls, value: str) -> "AccountRef":
        return cls("email", value)


def _check_paging(page: int, page_size: int) -> Outcome[None]:
    if page < 1 or page_size < 1:
        return bad_request("page and page_size must be equal or more than 1")
    if page_size > MAX_PAGE_SIZE:
        return bad_request(f"page_size must not exceed {MAX_PAGE_SIZE}")
    return None


class AdminService:
    def __init__(self, accounts: AccountStore, roles: RoleStore, sessions: SessionManager) -> None:
        self.accounts = accounts
        self.roles = roles
        self.sessions = sessions

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_user(self, ref: AccountRef) -> Outcome[AccountWithRoles]:
        if not ref.value or not ref.value.strip():
            return bad_request(f"{ref.field} parameter cannot be empty or whitespace.")
        if ref.field == "id":
            account = self.accounts.find_by_id(ref.value)
        else:
            account = self.accounts.find_by_email(ref.value)
        if account is None:
            return not_found(f"User with the {ref.field} of {ref.value} was not found")
        return AccountWithRoles(account=account, roles=self.roles.list_for_account(account.id))

    def list_users(self, query: UserQuery) -> Outcome[Page[AccountWithRoles]]:
        failure = _check_paging(query.page, query.page_size)
        if failure is not None:
            return failure
        page = self.accounts.search(query)
        return Page(
            items=[AccountWithRoles(account=a, roles=self.roles.list_for_account(a.id)) for a in page.items],
            page=page.page,
            page_size=page.page_size,
            total_count=page.total_count,
        )

    def list_admins(self, query: UserQuery) -> Outcome[Page[AccountWithRoles]]:
        return self.list_users(replace(query, admins_only=True))

    def list_roles(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str | None = None,
        order_by_name: bool = False,
    ) -> Outcome[Page[Role]]:
        failure = _check_paging(page, page_size)
        if failure is not None:
            return failure
        return self.roles.list_roles(page=page, page_size=page_size, search=search, order_by_name=order_by_name)

    # ------------------------------------------------------------------
    # Role changes
    # ------------------------------------------------------------------

    def promote(self, ref: AccountRef) -> Outcome[AccountWithRoles]:
        found = self.get_user(ref)
        if not isinstance(found, AccountWithRoles):
            return found
        if ADMIN not in found.roles:
            self.roles.add(found.account.id, ADMIN)
            found.roles = self.roles.list_for_account(found.account.id)
            logger.info("Promoted account %s to %s", found.account.id, ADMIN)
        return found

    def demote(self, ref: AccountRef) -> Outcome[AccountWithRoles]:
        found = self.get_user(ref)
        if not isinstance(found, AccountWithRoles):
            return found
        if ADMIN in found.roles:
            if self._admin_count() <= 1:
                return forbidden("Cannot demote the last remaining admin")
            self.roles.remove(found.account.id, ADMIN)
            found.roles = self.roles.list_for_account(found.account.id)
            logger.info("Demoted account %s from %s", found.account.id, ADMIN)
        return found

    # ------------------------------------------------------------------
    # Session and credential control
    # ------------------------------------------------------------------

    def revoke(self, ref: AccountRef) -> Outcome[AccountWithRoles]:
        found = self.get_user(ref)
        if not isinstance(found, AccountWithRoles):
            return found
        self.sessions.revoke(found.account)
        logger.info("Revoked refresh token of account %s", found.account.id)
        return found

    def reset_password(self, email: str, new_password: str) -> Outcome[AccountWithRoles]:
        found = self.get_user(AccountRef.by_email(email))
        if not isinstance(found, AccountWithRoles):
            return found
        found.account.password_hash = hash_password(new_password)
        self.accounts.update(found.account)
        self.sessions.revoke(found.account)
        logger.info("Password reset for account %s", found.account.id)
        return found

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def undelete(self, ref: AccountRef) -> Outcome[AccountWithRoles]:
        found = self.get_user(ref)
        if not isinstance(found, AccountWithRoles):
            return found
        if found.account.is_deleted:
            found.account.is_deleted = False
            self.accounts.update(found.account)
        return found

    def delete(self, ref: AccountRef) -> Outcome[None]:
        """Hard delete. Returns None on success."""
        found = self.get_user(ref)
        if not isinstance(found, AccountWithRoles):
            return found
        if ADMIN in found.roles and self._admin_count() <= 1:
            return forbidden("Cannot delete the last remaining admin")
        self.accounts.delete(found.account.id)
        logger.info("Deleted account %s", found.account.id)
        return None

    def _admin_count(self) -> int:
        return self.accounts.search(UserQuery(page=1, page_size=1, admins_only=True)).total_count
