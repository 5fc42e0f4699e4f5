"""
auth/profile.py -- Self-service operations on the caller's own account.

The caller is already authenticated; every method receives the resolved
Account. Request payloads are validated by the API models before they get
here (name lengths, password policy, date of birth in the past), so this
module only enforces rules that need stored state.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError

from auth.models import ADMIN, Account
from auth.store import AccountStore, RoleStore
from auth.tokens import hash_password
from core.errors import Outcome, bad_request, conflict, forbidden

logger = logging.getLogger("authkeeper.profile")


class ProfileService:
    def __init__(self, accounts: AccountStore, roles: RoleStore) -> None:
        self.accounts = accounts
        self.roles = roles

    def update(
        self,
        account: Account,
        first_name: str | None = None,
        last_name: str | None = None,
        date_of_birth: date | None = None,
    ) -> Account:
        """Apply the non-None fields; None keeps the current value."""
        account.first_name = first_name if first_name is not None else account.first_name
        account.last_name = last_name if last_name is not None else account.last_name
        account.date_of_birth = date_of_birth if date_of_birth is not None else account.date_of_birth
        self.accounts.update(account)
        return account

    def change_email(self, account: Account, new_email: str) -> Outcome[Account]:
        if new_email.strip().lower() == account.email.strip().lower():
            return conflict("New email must be different from the old one")
        owner = self.accounts.find_by_email(new_email)
        if owner is not None and owner.id != account.id:
            return bad_request("Email invalid or already taken")
        previous = (account.email, account.username)
        account.email = new_email
        account.username = new_email
        try:
            self.accounts.update(account)
        except IntegrityError:
            # Another account claimed the address after the lookup above.
            account.email, account.username = previous
            return bad_request("Email invalid or already taken")
        logger.info("Email changed for account %s", account.id)
        return account

    def change_password(self, account: Account, current_password: str, new_password: str) -> Outcome[Account]:
        if not self.accounts.verify_password(account, current_password):
            return bad_request("The provided current password is incorrect")
        if self.accounts.verify_password(account, new_password):
            return conflict("New password must be different from the old one")
        account.password_hash = hash_password(new_password)
        self.accounts.update(account)
        logger.info("Password changed for account %s", account.id)
        return account

    def deactivate(self, account: Account) -> Outcome[Account]:
        if ADMIN in self.roles.list_for_account(account.id):
            return forbidden("Admin accounts cannot be deactivated")
        if not account.is_deactivated:
            account.is_deactivated = True
            self.accounts.update(account)
        return account

    def reactivate(self, account: Account) -> Account:
        if account.is_deactivated:
            account.is_deactivated = False
            self.accounts.update(account)
        return account

    def soft_delete(self, account: Account) -> Outcome[Account]:
        if ADMIN in self.roles.list_for_account(account.id):
            return forbidden("Admin accounts cannot be soft deleted")
        if not account.is_deleted:
            account.is_deleted = True
            self.accounts.update(account)
        return account
