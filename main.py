#!/usr/bin/env python3
"""
Bech-Do -- operator command line for the marketplace API.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py create-admin --email admin@example.com
  python main.py create-admin --email admin@example.com --password s3cret! --first-name Ada
  python main.py seed

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL. Default: sqlite:///./bechdo.db
"""

import argparse
import getpass
import os
import sys
from typing import Optional

from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenCodec
from catalog.store import CatalogStore
from core.config import get_settings
from core.db import Database

_PASSWORD_MIN = 6


def _open(database_url: Optional[str]) -> Database:
    return Database(database_url or get_settings().database_url)


def cmd_serve(host: str, port: int, reload: bool, database_url: Optional[str] = None) -> int:
    """Run the API under uvicorn.

    The app reads its database from settings, so an override travels through
    DATABASE_URL; reload workers inherit it from the environment.
    """
    import uvicorn

    if database_url:
        os.environ["DATABASE_URL"] = database_url
        get_settings.cache_clear()
    uvicorn.run("asgi:app", host=host, port=port, reload=reload)
    return 0


def cmd_create_admin(
    email: str,
    password: Optional[str],
    first_name: str,
    last_name: str,
    database_url: Optional[str] = None,
) -> int:
    """Create an admin account, or promote an existing account to admin.

    An existing account keeps its current password; --password is only used
    when a new account is created.
    """
    settings = get_settings()
    db = _open(database_url)
    try:
        accounts = AccountStore(db)
        existing = accounts.get_by_email(email)
        if existing is None:
            if password is None:
                password = getpass.getpass("Password for new admin: ")
            if len(password) < _PASSWORD_MIN:
                print(f"  [!] Password must be at least {_PASSWORD_MIN} characters.")
                return 1
        service = AuthService(accounts, TokenCodec(settings.secret_key, settings.token_expire_seconds))
        view = service.ensure_admin(email, password or "", first_name, last_name)
    finally:
        db.close()
    action = "promoted" if existing is not None else "created"
    print(f"  Admin {view.email} (id={view.id}) {action}.")
    return 0


def cmd_seed(database_url: Optional[str] = None) -> int:
    db = _open(database_url)
    try:
        inserted = CatalogStore(db).seed_default_categories()
    finally:
        db.close()
    print(f"  {inserted} categor{'y' if inserted == 1 else 'ies'} inserted.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bechdo",
        description="Bech-Do marketplace API -- server and maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py create-admin --email admin@example.com
  DATABASE_URL=postgresql://u:p@db/bechdo python main.py seed
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this command",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = commands.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    admin = commands.add_parser("create-admin", help="Create or promote an admin account")
    admin.add_argument("--email", required=True, help="Admin email address")
    admin.add_argument(
        "--password",
        default=None,
        help="Password for a new account. Prompted for when omitted.",
    )
    admin.add_argument("--first-name", default="Admin", help="First name (default: Admin)")
    admin.add_argument("--last-name", default="User", help="Last name (default: User)")

    commands.add_parser("seed", help="Insert the default categories")

    args = parser.parse_args(argv)

    if args.command == "serve":
        return cmd_serve(args.host, args.port, args.reload, args.database_url)
    if args.command == "create-admin":
        return cmd_create_admin(args.email, args.password, args.first_name, args.last_name, args.database_url)
    if args.command == "seed":
        return cmd_seed(args.database_url)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
