"""Unit tests for auth/profile.py -- ProfileService.

Covers:
- update(): None keeps the stored value
- change_email(): same email -> Conflict, taken -> BadRequest (also when the
  unique index catches a concurrent claim), username follows
- change_password(): wrong current -> BadRequest, unchanged -> Conflict
- deactivate / soft_delete: Forbidden for admins, idempotent otherwise
- reactivate: idempotent
"""

from datetime import date

from auth.models import ADMIN, Account
from core.errors import ErrorKind, Failure

PASSWORD = "Secr3t!pass"


class TestUpdate:
    def test_only_given_fields_change(self, profiles, make_account):
        account = make_account(first_name="Ann", last_name="Lee")
        profiles.update(account, first_name="Anna", date_of_birth=date(1991, 2, 3))
        stored = profiles.accounts.find_by_id(account.id)
        assert stored.first_name == "Anna"
        assert stored.last_name == "Lee"
        assert stored.date_of_birth == date(1991, 2, 3)


class TestChangeEmail:
    def test_same_email_conflicts(self, profiles, make_account):
        account = make_account("me@example.com")
        result = profiles.change_email(account, "ME@example.com")
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.CONFLICT

    def test_taken_email_is_bad_request(self, profiles, make_account):
        make_account("taken@example.com")
        account = make_account("mine@example.com")
        result = profiles.change_email(account, "taken@example.com")
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.BAD_REQUEST

    def test_username_follows_email(self, profiles, make_account):
        account = make_account("old@example.com")
        result = profiles.change_email(account, "new@example.com")
        assert isinstance(result, Account)
        stored = profiles.accounts.find_by_email("new@example.com")
        assert stored.id == account.id
        assert stored.username == "new@example.com"
        assert profiles.accounts.find_by_email("old@example.com") is None

    def test_email_claimed_after_lookup_is_bad_request(self, profiles, make_account, monkeypatch):
        other = make_account("claimed@example.com")
        account = make_account("slow@example.com")
        monkeypatch.setattr(profiles.accounts, "find_by_email", lambda email: None)
        result = profiles.change_email(account, "Claimed@example.com")
        assert isinstance(result, Failure)
        assert result.kind is ErrorKind.BAD_REQUEST
        assert account.email == "slow@example.com"
        assert profiles.accounts.find_by_id(account.id).email == "slow@example.com"
        assert profiles.accounts.find_by_id(other.id).email == "claimed@example.com"


class TestChangePassword:
    def test_wrong_current_password(self, profiles, make_account):
        account = make_account(password=PASSWORD)
        result = profiles.change_password(account, "Wr0ng!pass", "N3w!password")
        assert result.kind is ErrorKind.BAD_REQUEST

    def test_same_password_conflicts(self, profiles, make_account):
        account = make_account(password=PASSWORD)
        result = profiles.change_password(account, PASSWORD, PASSWORD)
        assert result.kind is ErrorKind.CONFLICT

    def test_password_changed(self, profiles, make_account):
        account = make_account(password=PASSWORD)
        assert isinstance(profiles.change_password(account, PASSWORD, "N3w!password"), Account)
        stored = profiles.accounts.find_by_id(account.id)
        assert profiles.accounts.verify_password(stored, "N3w!password")
        assert not profiles.accounts.verify_password(stored, PASSWORD)


class TestFlags:
    def test_deactivate_and_reactivate_are_idempotent(self, profiles, make_account):
        account = make_account()
        profiles.deactivate(account)
        assert profiles.deactivate(account).is_deactivated is True
        assert profiles.accounts.find_by_id(account.id).is_deactivated is True
        profiles.reactivate(account)
        assert profiles.reactivate(account).is_deactivated is False
        assert profiles.accounts.find_by_id(account.id).is_deactivated is False

    def test_soft_delete_is_idempotent(self, profiles, make_account):
        account = make_account()
        profiles.soft_delete(account)
        assert profiles.soft_delete(account).is_deleted is True
        assert profiles.accounts.find_by_id(account.id).is_deleted is True

    def test_admin_cannot_deactivate_or_soft_delete(self, profiles, make_account):
        account = make_account()
        profiles.roles.add(account.id, ADMIN)
        assert profiles.deactivate(account).kind is ErrorKind.FORBIDDEN
        assert profiles.soft_delete(account).kind is ErrorKind.FORBIDDEN
        stored = profiles.accounts.find_by_id(account.id)
        assert stored.is_deactivated is False
        assert stored.is_deleted is False
