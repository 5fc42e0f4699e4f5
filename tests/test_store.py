"""Unit tests for auth/store.py -- AccountStore and RoleStore.

Covers:
- create / find_by_id / find_by_email (case-insensitive) round trip
- duplicate email raises IntegrityError
- set_refresh_token() writes and clears the token pair together
- swap_refresh_token() only succeeds against the expected stored value
- update() never touches the refresh-token pair
- search(): text search, flags, admins_only, ordering, paging
- RoleStore: ensure_roles idempotence, add / remove, list_roles
- delete() removes role memberships too
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import ADMIN, USER, Account, IssuedToken, UserQuery
from auth.store import new_account_id
from auth.tokens import hash_password


def _new(email: str, first: str = "Test", last: str = "User") -> Account:
    return Account(
        id=new_account_id(),
        email=email,
        username=email,
        first_name=first,
        last_name=last,
        password_hash=hash_password("Secr3t!pass"),
        created_at=datetime.now(timezone.utc),
    )


def _token(value: str, days: int = 7) -> IssuedToken:
    return IssuedToken(value=value, expires_at=datetime.now(timezone.utc) + timedelta(days=days))


class TestAccounts:
    def test_create_and_find(self, stores):
        accounts, _ = stores
        created = accounts.create(_new("Jane@Example.com", "Jane", "Doe"))
        by_id = accounts.find_by_id(created.id)
        assert by_id is not None
        assert by_id.email == "Jane@Example.com"
        assert by_id.display_name == "Jane Doe"
        assert by_id.refresh_token is None
        assert by_id.refresh_token_expires_at is None
        assert by_id.created_at.tzinfo is not None

    def test_find_by_email_is_case_insensitive(self, stores):
        accounts, _ = stores
        created = accounts.create(_new("Jane@Example.com"))
        assert accounts.find_by_email("jane@example.com").id == created.id
        assert accounts.find_by_email("  JANE@EXAMPLE.COM ").id == created.id
        assert accounts.find_by_email("nobody@example.com") is None

    def test_duplicate_email_raises(self, stores):
        accounts, _ = stores
        accounts.create(_new("dup@example.com"))
        with pytest.raises(IntegrityError):
            accounts.create(_new("DUP@example.com"))

    def test_update_persists_profile_fields(self, stores):
        accounts, _ = stores
        account = accounts.create(_new("p@example.com"))
        account.first_name = "Changed"
        account.date_of_birth = date(1990, 5, 17)
        account.is_deactivated = True
        assert accounts.update(account) is True
        stored = accounts.find_by_id(account.id)
        assert stored.first_name == "Changed"
        assert stored.date_of_birth == date(1990, 5, 17)
        assert stored.is_deactivated is True

    def test_update_does_not_touch_refresh_pair(self, stores):
        accounts, _ = stores
        account = accounts.create(_new("r@example.com"))
        accounts.set_refresh_token(account, _token("abc"))
        stale = accounts.find_by_id(account.id)
        stale.refresh_token = None
        stale.refresh_token_expires_at = None
        accounts.update(stale)
        assert accounts.find_by_id(account.id).refresh_token == "abc"

    def test_delete_removes_memberships(self, stores):
        accounts, roles = stores
        account = accounts.create(_new("gone@example.com"))
        roles.add(account.id, USER)
        assert accounts.delete(account.id) is True
        assert accounts.find_by_id(account.id) is None
        assert roles.list_for_account(account.id) == []
        assert accounts.delete(account.id) is False


class TestRefreshTokenPair:
    def test_set_and_clear_together(self, stores):
        accounts, _ = stores
        account = accounts.create(_new("t@example.com"))
        token = _token("tok-1")
        accounts.set_refresh_token(account, token)
        stored = accounts.find_by_id(account.id)
        assert stored.refresh_token == "tok-1"
        assert stored.refresh_token_expires_at == token.expires_at
        assert accounts.find_by_refresh_token("tok-1").id == account.id

        accounts.set_refresh_token(account, None)
        stored = accounts.find_by_id(account.id)
        assert stored.refresh_token is None
        assert stored.refresh_token_expires_at is None
        assert account.refresh_token is None
        assert account.refresh_token_expires_at is None

    def test_swap_requires_expected_value(self, stores):
        accounts, _ = stores
        account = accounts.create(_new("s@example.com"))
        accounts.set_refresh_token(account, _token("old"))

        assert accounts.swap_refresh_token(account, "old", _token("new")) is True
        assert accounts.find_by_id(account.id).refresh_token == "new"

        # Second swap against the same old value finds no row.
        assert accounts.swap_refresh_token(account, "old", _token("newer")) is False
        assert accounts.find_by_id(account.id).refresh_token == "new"
        assert accounts.find_by_refresh_token("old") is None


class TestSearch:
    @pytest.fixture
    def populated(self, stores):
        accounts, roles = stores
        made = {}
        for email, first, last in [
            ("zoe@example.com", "Zoe", "Zimmer"),
            ("adam@example.com", "Adam", "Abbott"),
            ("mia@sample.org", "Mia", "Moss"),
        ]:
            made[first] = accounts.create(_new(email, first, last))
            roles.add(made[first].id, USER)
        roles.add(made["Mia"].id, ADMIN)
        made["Zoe"].is_deleted = True
        accounts.update(made["Zoe"])
        return accounts, made

    def test_search_matches_any_name_field(self, populated):
        accounts, _ = populated
        assert [a.first_name for a in accounts.search(UserQuery(search="SAMPLE")).items] == ["Mia"]
        assert [a.first_name for a in accounts.search(UserQuery(search="abb")).items] == ["Adam"]

    def test_search_escapes_like_wildcards(self, populated):
        accounts, _ = populated
        assert accounts.search(UserQuery(search="%")).total_count == 0

    def test_deleted_filter(self, populated):
        accounts, _ = populated
        assert [a.first_name for a in accounts.search(UserQuery(is_deleted=True)).items] == ["Zoe"]
        assert accounts.search(UserQuery(is_deleted=False)).total_count == 2
        assert accounts.search(UserQuery()).total_count == 3

    def test_admins_only(self, populated):
        accounts, _ = populated
        page = accounts.search(UserQuery(admins_only=True))
        assert [a.first_name for a in page.items] == ["Mia"]

    def test_order_by_name_and_paging(self, populated):
        accounts, _ = populated
        first = accounts.search(UserQuery(page=1, page_size=2, order_by_name=True))
        second = accounts.search(UserQuery(page=2, page_size=2, order_by_name=True))
        assert [a.first_name for a in first.items] == ["Adam", "Mia"]
        assert [a.first_name for a in second.items] == ["Zoe"]
        assert first.total_count == 3
        assert first.total_pages == 2
        assert first.has_next_page and not first.has_previous_page
        assert second.has_previous_page and not second.has_next_page


class TestRoles:
    def test_ensure_roles_is_idempotent(self, stores):
        _, roles = stores
        # The fixture already created the standard roles.
        assert roles.ensure_roles([ADMIN, USER]) == []
        assert roles.ensure_roles(["Auditor"]) == ["Auditor"]

    def test_add_and_remove(self, stores):
        accounts, roles = stores
        account = accounts.create(_new("roles@example.com"))
        assert roles.add(account.id, USER) is True
        assert roles.add(account.id, USER) is False
        assert roles.add(account.id, ADMIN) is True
        assert roles.list_for_account(account.id) == [ADMIN, USER]
        assert roles.remove(account.id, ADMIN) is True
        assert roles.remove(account.id, ADMIN) is False
        assert roles.list_for_account(account.id) == [USER]

    def test_add_unknown_role_raises(self, stores):
        accounts, roles = stores
        account = accounts.create(_new("x@example.com"))
        with pytest.raises(LookupError):
            roles.add(account.id, "Nope")

    def test_list_roles(self, stores):
        _, roles = stores
        page = roles.list_roles(order_by_name=True)
        assert [r.name for r in page.items] == [ADMIN, USER]
        assert page.items[0].normalized_name == "ADMIN"
        assert [r.name for r in roles.list_roles(search="us").items] == [USER]
