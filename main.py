#!/usr/bin/env python3
"""
TokenAuth -- operator commands for the credential and token stores.

Usage:
  python main.py create-user alice@example.com --first-name Alice
  python main.py list-users
  python main.py reset-password alice@example.com
  python main.py purge-tokens

Environment variables (see core/config.py):
  DATABASE_URL   SQLAlchemy URL of the datastore (default: bundled SQLite file)
  BCRYPT_ROUNDS  bcrypt cost factor used for new password hashes (default: 12)

purge-tokens is the only way expired token rows are removed. Nothing runs it
on a schedule; wire it into cron or a job runner if table growth matters.
"""

import argparse
import getpass
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import DuplicateEmailError, NotFoundError, PasswordTooLongError, StorageError
from auth.models import User
from auth.store import TokenStore, UserStore, create_db_engine, init_schema
from core.config import get_settings

logger = logging.getLogger("tokenauth.cli")


def _read_password(given: Optional[str]) -> str:
    """Return --password if given, otherwise prompt twice without echo."""
    if given:
        return given
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    if not first:
        raise SystemExit("  [!] Password must not be empty.")
    return first


def _cmd_create_user(args: argparse.Namespace, users: UserStore, tokens: TokenStore) -> int:
    password = _read_password(args.password)
    user = User(email=args.email, first_name=args.first_name, last_name=args.last_name)
    try:
        user_id = users.create_user(user, password)
    except DuplicateEmailError:
        print(f"  [!] A user with email {args.email} already exists.")
        return 1
    except PasswordTooLongError as exc:
        print(f"  [!] Password rejected: {exc}.")
        return 1
    print(f"  Created user {user_id} ({args.email}).")
    return 0


def _cmd_list_users(args: argparse.Namespace, users: UserStore, tokens: TokenStore) -> int:
    rows = users.list_users()
    if not rows:
        print("  No users.")
        return 0
    for user in rows:
        name = f"{user.first_name} {user.last_name}".strip()
        created = user.created_at.isoformat() if user.created_at else ""
        print(f"  {user.id:>5}  {user.email:<40} {name:<30} {created}")
    return 0


def _cmd_reset_password(args: argparse.Namespace, users: UserStore, tokens: TokenStore) -> int:
    try:
        user = users.get_by_email(args.email)
    except NotFoundError:
        print(f"  [!] No user with email {args.email}.")
        return 1
    password = _read_password(args.password)
    try:
        users.reset_password(user.id, password)
    except PasswordTooLongError as exc:
        print(f"  [!] Password rejected: {exc}.")
        return 1
    if args.revoke_sessions:
        revoked = tokens.delete_tokens_for_user(user.id)
        print(f"  Revoked {revoked} session(s).")
    print(f"  Password updated for {args.email}.")
    return 0


def _cmd_purge_tokens(args: argparse.Namespace, users: UserStore, tokens: TokenStore) -> int:
    removed = tokens.purge_expired()
    print(f"  Removed {removed} expired token(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokenauth",
        description="Manage TokenAuth users and bearer tokens.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a user with a password")
    create.add_argument("email")
    create.add_argument("--first-name", default="")
    create.add_argument("--last-name", default="")
    create.add_argument("--password", help="Password (prompted when omitted)")
    create.set_defaults(handler=_cmd_create_user)

    listing = sub.add_parser("list-users", help="List all users")
    listing.set_defaults(handler=_cmd_list_users)

    reset = sub.add_parser("reset-password", help="Set a new password for a user")
    reset.add_argument("email")
    reset.add_argument("--password", help="New password (prompted when omitted)")
    reset.add_argument(
        "--revoke-sessions",
        action="store_true",
        help="Also delete every token the user currently holds",
    )
    reset.set_defaults(handler=_cmd_reset_password)

    purge = sub.add_parser("purge-tokens", help="Delete tokens whose expiry has passed")
    purge.set_defaults(handler=_cmd_purge_tokens)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    engine = None
    try:
        engine = create_db_engine(settings.database_url, settings.db_timeout_seconds)
        init_schema(engine)
        users = UserStore(
            engine,
            bcrypt_rounds=settings.bcrypt_rounds,
            retry_attempts=settings.insert_retry_attempts,
            retry_delay=settings.insert_retry_delay_seconds,
        )
        tokens = TokenStore(engine, single_session_per_user=settings.single_session_per_user)
        return args.handler(args, users, tokens)
    except (StorageError, SQLAlchemyError) as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        print("  [!] The datastore is unavailable. See the log for details.")
        return 2
    finally:
        if engine is not None:
            engine.dispose()


if __name__ == "__main__":
    raise SystemExit(main())
