#!/usr/bin/env python3
"""
Enrollment Portal -- maintenance commands and development server.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py create-admin --username registrar
  python main.py seed
  python main.py rehash-passwords --dry-run
  python main.py purge-sessions

Environment variables:
  DATABASE_URL      SQLAlchemy URL of the main database (default: enrollment.db next to this file)
  SESSION_DB_PATH   SQLite file holding server-side sessions (default: sessions.db)
  SESSION_SECRET    Required outside DEBUG mode. See core/config.py for the full list.
"""

import argparse
import getpass
import sys
from typing import Optional

from api.models import MIN_PASSWORD_LENGTH
from auth.migrate import rehash_legacy_passwords
from auth.models import User, normalize_username
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings
from core.database import Database
from registrar.seed import seed_catalog
from registrar.store import RegistrarStore
from sessions.store import DEFAULT_DB_PATH as DEFAULT_SESSION_DB
from sessions.store import SessionStore


def _open_database(args: argparse.Namespace) -> Database:
    return Database(args.database_url or get_settings().database_url)


def _read_password(args: argparse.Namespace) -> Optional[str]:
    """Return the password from --password, or prompt twice for it."""
    if args.password:
        return args.password
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def cmd_create_admin(args: argparse.Namespace) -> int:
    username = normalize_username(args.username)
    if not username:
        print("  [!] Username must not be empty.")
        return 1

    db = _open_database(args)
    try:
        store = UserStore(db)
        if store.get_by_username(username) is not None:
            print(f"  [!] User '{username}' already exists.")
            return 1

        password = _read_password(args)
        if password is None:
            return 1
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"  [!] Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            return 1

        user_id = store.create_user(User(username=username, role="admin", hashed_password=hash_password(password)))
        print(f"  Created admin '{username}' (id={user_id}).")
        return 0
    finally:
        db.close()


def cmd_rehash_passwords(args: argparse.Namespace) -> int:
    db = _open_database(args)
    try:
        updated = rehash_legacy_passwords(UserStore(db), dry_run=args.dry_run)
    finally:
        db.close()

    if not updated:
        print("  All stored passwords are already hashed.")
        return 0
    verb = "Would rehash" if args.dry_run else "Rehashed"
    print(f"  {verb} {len(updated)} password(s):")
    for username in updated:
        print(f"    {username}")
    return 0


def cmd_seed(args: argparse.Namespace) -> int:
    db = _open_database(args)
    try:
        courses, subjects = seed_catalog(RegistrarStore(db))
    finally:
        db.close()

    if courses == 0 and subjects == 0:
        print("  Catalog already has courses; nothing seeded.")
    else:
        print(f"  Seeded {courses} course(s) and {subjects} subject(s).")
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    settings = get_settings()
    sessions = SessionStore(
        settings.session_secret,
        db_path=args.session_db or settings.session_db_path or DEFAULT_SESSION_DB,
        ttl=settings.session_ttl_seconds,
    )
    try:
        removed = sessions.purge_expired()
    finally:
        sessions.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "asgi:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="enrollment-portal",
        description="Student enrollment portal: API server and maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py create-admin --username registrar
  DATABASE_URL=postgresql://user:pass@db/enrollment python main.py seed
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default="",
        help="Override DATABASE_URL for this command",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    serve = sub.add_parser("serve", help="Run the API server with uvicorn")
    serve.add_argument("--host", default="", help="Bind address (default: HOST setting)")
    serve.add_argument("--port", type=int, default=0, help="Port (default: PORT setting)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=cmd_serve)

    admin = sub.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("--username", required=True, help="Login name for the new admin")
    admin.add_argument(
        "--password",
        default="",
        help="Password (prompted for when omitted; avoid passing it on shared machines)",
    )
    admin.set_defaults(func=cmd_create_admin)

    rehash = sub.add_parser("rehash-passwords", help="Hash any legacy plaintext passwords in place")
    rehash.add_argument("--dry-run", action="store_true", help="List affected accounts without changing them")
    rehash.set_defaults(func=cmd_rehash_passwords)

    seed = sub.add_parser("seed", help="Insert the default courses and subjects into an empty catalog")
    seed.set_defaults(func=cmd_seed)

    purge = sub.add_parser("purge-sessions", help="Delete expired server-side sessions")
    purge.add_argument("--session-db", metavar="PATH", default="", help="Override SESSION_DB_PATH")
    purge.set_defaults(func=cmd_purge_sessions)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
