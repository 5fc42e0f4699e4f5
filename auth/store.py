"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and roles.

Pattern: Repository + Data Mapper. AccountStore and RoleStore are the
repositories; _row_to_account / _row_to_role are the mappers. Services and
routes never touch SQL directly.

Schema:
  users       -- one row per account, including the single refresh-token slot
  roles       -- named roles ("Admin", "User")
  user_roles  -- many-to-many membership

Security:
  All queries use bound parameters. No f-strings in SQL.

  The refresh-token pair (refresh_token, refresh_token_expires_at) is only
  ever written by set_refresh_token() and swap_refresh_token(), which always
  write both columns in the same statement. update() does not touch them.

  swap_refresh_token() is a compare-and-swap: the UPDATE is keyed on the old
  token value, so of two concurrent refreshes presenting the same token only
  one can match a row.

Timestamps are stored as ISO 8601 UTC strings with fixed microsecond
precision so string order equals time order.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    exists,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import ADMIN, Account, IssuedToken, Page, Role, UserQuery
from auth.tokens import verify_password

logger = logging.getLogger("authkeeper.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("email", String(255), nullable=False),
    Column("normalized_email", String(255), nullable=False, unique=True),
    Column("username", String(255), nullable=False),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("date_of_birth", String(10)),  # ISO date
    Column("refresh_token", String(128), index=True),
    Column("refresh_token_expires_at", String(32)),
    Column("is_deleted", Integer, nullable=False, server_default="0"),
    Column("is_deactivated", Integer, nullable=False, server_default="0"),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(64), nullable=False),
    Column("normalized_name", String(64), nullable=False, unique=True),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", String(64), ForeignKey("users.id"), primary_key=True),
    Column("role_id", String(64), ForeignKey("roles.id"), primary_key=True),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Create the engine shared by AccountStore and RoleStore and ensure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def open_stores(db_url: str) -> tuple[AccountStore, RoleStore]:
    """Return an (AccountStore, RoleStore) pair over one engine."""
    engine = create_store_engine(db_url)
    return AccountStore(engine), RoleStore(engine)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _normalize(value: str) -> str:
    return value.strip().upper()


def new_account_id() -> str:
    return f"u_{uuid.uuid4().hex}"


def _search_clause(term: str, *columns):
    needle = term.strip().lower()
    return or_(*(func.lower(col).contains(needle, autoescape=True) for col in columns))


def _paginate(conn, stmt, page: int, page_size: int):
    total = conn.execute(select(func.count()).select_from(stmt.subquery())).scalar() or 0
    rows = conn.execute(stmt.limit(page_size).offset((page - 1) * page_size)).fetchall()
    return rows, total


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        accounts, roles = open_stores("sqlite:///authkeeper.db")
        account = accounts.find_by_email("a@example.com")
        accounts.close()
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup by email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.normalized_email == _normalize(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_refresh_token(self, token: str) -> Account | None:
        """Return the account whose stored refresh token equals token exactly."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.refresh_token == token)).fetchone()
        return _row_to_account(row) if row is not None else None

    def verify_password(self, account: Account, plain: str) -> bool:
        return verify_password(plain, account.password_hash)

    def search(self, query: UserQuery) -> Page[Account]:
        """Filtered, ordered, paginated listing for the admin endpoints.

        The caller validates page and page_size; this method trusts them.
        """
        stmt = _users.select()
        if query.search:
            stmt = stmt.where(
                _search_clause(query.search, _users.c.username, _users.c.first_name, _users.c.last_name, _users.c.email)
            )
        if query.is_deleted is not None:
            stmt = stmt.where(_users.c.is_deleted == int(query.is_deleted))
        if query.is_deactivated is not None:
            stmt = stmt.where(_users.c.is_deactivated == int(query.is_deactivated))
        if query.admins_only:
            stmt = stmt.where(
                exists()
                .where(_user_roles.c.user_id == _users.c.id)
                .where(_user_roles.c.role_id == _roles.c.id)
                .where(_roles.c.normalized_name == _normalize(ADMIN))
            )
        stmt = stmt.order_by(_users.c.first_name, _users.c.id) if query.order_by_name else stmt.order_by(_users.c.id)
        with self.engine.connect() as conn:
            rows, total = _paginate(conn, stmt, query.page, query.page_size)
        return Page(
            items=[_row_to_account(r) for r in rows],
            page=query.page,
            page_size=query.page_size,
            total_count=total,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, account: Account) -> Account:
        """Insert a new account.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers check find_by_email() first; the unique index is the backstop
        for two concurrent registrations of the same address.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=account.id,
                    email=account.email,
                    normalized_email=_normalize(account.email),
                    username=account.username,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    password_hash=account.password_hash,
                    created_at=_to_iso(account.created_at),
                    date_of_birth=account.date_of_birth.isoformat() if account.date_of_birth else None,
                    refresh_token=None,
                    refresh_token_expires_at=None,
                    is_deleted=1 if account.is_deleted else 0,
                    is_deactivated=1 if account.is_deactivated else 0,
                )
            )
            conn.commit()
        account.refresh_token = None
        account.refresh_token_expires_at = None
        return account

    def update(self, account: Account) -> bool:
        """Persist profile, credential and flag fields of an existing account.

        The refresh-token pair is deliberately excluded; see set_refresh_token().
        Returns True if a row was updated, False if the id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == account.id)
                .values(
                    email=account.email,
                    normalized_email=_normalize(account.email),
                    username=account.username,
                    first_name=account.first_name,
                    last_name=account.last_name,
                    password_hash=account.password_hash,
                    date_of_birth=account.date_of_birth.isoformat() if account.date_of_birth else None,
                    is_deleted=1 if account.is_deleted else 0,
                    is_deactivated=1 if account.is_deactivated else 0,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def set_refresh_token(self, account: Account, token: IssuedToken | None) -> None:
        """Overwrite (token) or clear (None) the account's refresh-token pair.

        Both columns are written in one statement. The in-memory account is
        updated to match so callers never hold a half-updated object.
        """
        value = token.value if token is not None else None
        expires_at = _to_iso(token.expires_at) if token is not None else None
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == account.id)
                .values(refresh_token=value, refresh_token_expires_at=expires_at)
            )
            conn.commit()
        account.refresh_token = value
        account.refresh_token_expires_at = _from_iso(expires_at)

    def swap_refresh_token(self, account: Account, expected: str, token: IssuedToken) -> bool:
        """Replace the refresh-token pair only if the stored token still equals expected.

        Returns False when another request rotated or revoked the token first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == account.id) & (_users.c.refresh_token == expected))
                .values(refresh_token=token.value, refresh_token_expires_at=_to_iso(token.expires_at))
            )
            conn.commit()
        if result.rowcount != 1:
            return False
        account.refresh_token = token.value
        account.refresh_token_expires_at = _from_iso(_to_iso(token.expires_at))
        return True

    def delete(self, account_id: str) -> bool:
        """Permanently delete an account and its role memberships.

        Returns True if deleted, False if not found.
        """
        with self.engine.connect() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == account_id))
            result = conn.execute(_users.delete().where(_users.c.id == account_id))
            conn.commit()
        return result.rowcount > 0

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleStore:
    """Repository for roles and account-role membership."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ensure_roles(self, names: tuple[str, ...] | list[str]) -> list[str]:
        """Create any of the named roles that do not exist yet. Returns the names created."""
        created: list[str] = []
        with self.engine.connect() as conn:
            for name in names:
                found = conn.execute(
                    select(_roles.c.id).where(_roles.c.normalized_name == _normalize(name))
                ).fetchone()
                if found is not None:
                    continue
                conn.execute(
                    _roles.insert().values(id=f"role_{uuid.uuid4().hex}", name=name, normalized_name=_normalize(name))
                )
                created.append(name)
            conn.commit()
        return created

    def list_for_account(self, account_id: str) -> list[str]:
        """Role names held by the account, alphabetical."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_roles.c.name)
                .join(_user_roles, _user_roles.c.role_id == _roles.c.id)
                .where(_user_roles.c.user_id == account_id)
                .order_by(_roles.c.name)
            ).fetchall()
        return [r.name for r in rows]

    def add(self, account_id: str, role_name: str) -> bool:
        """Grant a role. Returns False if the account already held it.

        Raises LookupError if the role does not exist -- ensure_roles() runs
        at startup, so this indicates a misconfiguration, not user error.
        """
        with self.engine.connect() as conn:
            role_id = self._role_id(conn, role_name)
            held = conn.execute(
                select(_user_roles.c.user_id).where(
                    (_user_roles.c.user_id == account_id) & (_user_roles.c.role_id == role_id)
                )
            ).fetchone()
            if held is not None:
                return False
            conn.execute(_user_roles.insert().values(user_id=account_id, role_id=role_id))
            conn.commit()
        return True

    def remove(self, account_id: str, role_name: str) -> bool:
        """Revoke a role. Returns False if the account did not hold it."""
        with self.engine.connect() as conn:
            role_id = self._role_id(conn, role_name)
            result = conn.execute(
                _user_roles.delete().where((_user_roles.c.user_id == account_id) & (_user_roles.c.role_id == role_id))
            )
            conn.commit()
        return result.rowcount > 0

    def list_roles(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str | None = None,
        order_by_name: bool = False,
    ) -> Page[Role]:
        stmt = _roles.select()
        if search:
            stmt = stmt.where(_search_clause(search, _roles.c.name))
        stmt = stmt.order_by(_roles.c.name if order_by_name else _roles.c.id)
        with self.engine.connect() as conn:
            rows, total = _paginate(conn, stmt, page, page_size)
        return Page(items=[_row_to_role(r) for r in rows], page=page, page_size=page_size, total_count=total)

    @staticmethod
    def _role_id(conn, role_name: str) -> str:
        row = conn.execute(select(_roles.c.id).where(_roles.c.normalized_name == _normalize(role_name))).fetchone()
        if row is None:
            raise LookupError(f"Role {role_name!r} does not exist")
        return row.id


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        password_hash=row.password_hash,
        created_at=_from_iso(row.created_at),
        date_of_birth=date.fromisoformat(row.date_of_birth) if row.date_of_birth else None,
        refresh_token=row.refresh_token,
        refresh_token_expires_at=_from_iso(row.refresh_token_expires_at),
        is_deleted=bool(row.is_deleted),
        is_deactivated=bool(row.is_deactivated),
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name, normalized_name=row.normalized_name)
