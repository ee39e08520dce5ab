#!/usr/bin/env python3
"""
Queso -- management commands for the user & authentication backend.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 3000 --reload
  python main.py init-db
  python main.py create-user alice alice@example.com

Environment variables (or .env):
  JWT_SECRET            Required. At least 32 characters.
  GOOGLE_CLIENT_ID      Required.
  GOOGLE_CLIENT_SECRET  Required.
  GOOGLE_REDIRECT_URL   Required.
  DATABASE_URL          Optional. Defaults to sqlite:///queso.db.
"""

import argparse
import getpass
import sys

from core.config import get_settings
from users.models import UserError
from users.service import UserService
from users.store import UserStore


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    # Fail here, with a readable message, rather than inside the worker.
    get_settings()
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        count = store.count_users()
    finally:
        store.close()
    print(f"  Database ready at {settings.database_url} ({count} users)")
    return 0


def _cmd_create_user(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("  Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1

    store = UserStore(get_settings().database_url)
    try:
        user = UserService(store).register(args.username, args.email, password)
    except UserError as exc:
        print(f"  [!] {exc.public_message}")
        return 1
    finally:
        store.close()
    print(f"  Created user {user.username} (id={user.id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="queso",
        description="Queso user & authentication backend",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_cmd_serve)

    init_db = sub.add_parser("init-db", help="Create database tables if they do not exist")
    init_db.set_defaults(func=_cmd_init_db)

    create_user = sub.add_parser("create-user", help="Create a local account")
    create_user.add_argument("username")
    create_user.add_argument("email")
    create_user.add_argument("--password", help="Password (prompted when omitted)")
    create_user.set_defaults(func=_cmd_create_user)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ValueError as exc:
        # pydantic-settings validation errors are ValueErrors.
        print(f"  [!] Configuration error: {exc}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
