#!/usr/bin/env python3
"""
AuthKeeper -- management commands for operators.

Usage:
  python main.py init
  python main.py create-admin admin@example.com
  python main.py create-admin admin@example.com --password 'S3cret!pass'
  python main.py promote someone@example.com
  python main.py revoke someone@example.com

All commands work directly against DATABASE_URL, the same store the API
uses. Run them while the API is up or down.

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the account store (default: ./authkeeper.db)
  SECRET_KEY     Required unless DEBUG=true (see core/config.py)
"""

import argparse
import getpass
import sys
from typing import Optional

from api.models import check_password_policy
from auth.admin import AccountRef, AdminService
from auth.bootstrap import ensure_admin, ensure_admin_created, ensure_roles_created, login_email
from auth.models import AccountWithRoles
from auth.sessions import SessionManager
from auth.store import open_stores
from core.config import get_settings


def _open_services() -> tuple[SessionManager, AdminService]:
    settings = get_settings()
    accounts, roles = open_stores(settings.database_url)
    sessions = SessionManager(accounts, roles, settings)
    ensure_roles_created(sessions)
    return sessions, AdminService(accounts, roles, sessions)


def _read_password(given: Optional[str]) -> Optional[str]:
    """Return a password that meets the policy, prompting when none was given."""
    password = given if given is not None else getpass.getpass("  Password: ")
    try:
        check_password_policy(password)
    except ValueError as e:
        print(f"  [!] {e}")
        return None
    if not 8 <= len(password) <= 72:
        print("  [!] Password must be between 8 and 72 characters.")
        return None
    return password


def _print_account(found: AccountWithRoles) -> None:
    print(f"  {found.account.email}  id={found.account.id}  roles={', '.join(found.roles)}")


def cmd_init(args: argparse.Namespace) -> int:
    sessions, _ = _open_services()
    try:
        admin = ensure_admin_created(sessions, get_settings())
    finally:
        sessions.accounts.close()
    print("  Schema and roles ready.")
    if admin is not None:
        print(f"  Initial admin: {admin.email}")
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    email = login_email(args.email)
    if email is None:
        print(f"  [!] '{args.email}' is not an email address the login form accepts.")
        return 1
    password = _read_password(args.password)
    if password is None:
        return 1
    sessions, _ = _open_services()
    try:
        admin = ensure_admin(sessions, email, password)
    finally:
        sessions.accounts.close()
    if admin is None:
        print(f"  [!] Could not create admin '{args.email}'.")
        return 1
    print(f"  Admin ready: {admin.email}  id={admin.id}")
    return 0


def cmd_promote(args: argparse.Namespace) -> int:
    sessions, admin = _open_services()
    try:
        outcome = admin.promote(AccountRef.by_email(args.email))
    finally:
        sessions.accounts.close()
    if not isinstance(outcome, AccountWithRoles):
        print(f"  [!] {outcome.detail}")
        return 1
    _print_account(outcome)
    return 0


def cmd_revoke(args: argparse.Namespace) -> int:
    sessions, admin = _open_services()
    try:
        outcome = admin.revoke(AccountRef.by_email(args.email))
    finally:
        sessions.accounts.close()
    if not isinstance(outcome, AccountWithRoles):
        print(f"  [!] {outcome.detail}")
        return 1
    print("  Refresh token revoked.")
    _print_account(outcome)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authkeeper",
        description="AuthKeeper account store management.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init
  python main.py create-admin admin@example.com
  python main.py promote someone@example.com
  python main.py revoke someone@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("init", help="Create the schema and standard roles; seed the initial admin if configured")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("create-admin", help="Create an admin account, or grant Admin to an existing one")
    p.add_argument("email", help="Email of the admin account")
    p.add_argument("--password", default=None, help="Password (prompted for when omitted)")
    p.set_defaults(func=cmd_create_admin)

    p = sub.add_parser("promote", help="Grant the Admin role to an existing account")
    p.add_argument("email")
    p.set_defaults(func=cmd_promote)

    p = sub.add_parser("revoke", help="Revoke an account's refresh token")
    p.add_argument("email")
    p.set_defaults(func=cmd_revoke)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
