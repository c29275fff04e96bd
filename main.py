#!/usr/bin/env python3
"""
Portal auth -- administrative command line.

Usage:
  python main.py create-user --email admin@example.com --role admin
  python main.py create-user --email jo@example.com --inactive
  python main.py purge-revoked

The password for create-user is read with getpass (never from argv, where it
would land in shell history). It must satisfy the same policy as the
admin API: 8+ characters with lowercase, uppercase and a digit.

Environment variables (see core/config.py):
  DATABASE_URL, SECRET_KEY, REFRESH_SECRET_KEY, BCRYPT_ROUNDS, DEBUG
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.errors import ValidationError
from auth.models import ROLES, User
from auth.passwords import PasswordHasher, PasswordPolicy
from auth.sessions import SessionInvalidator
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import get_settings

logger = logging.getLogger("portal.cli")


def _read_password() -> Optional[str]:
    """Prompt twice and return the password, or None if the entries differ."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = _read_password()
    if password is None:
        return 1

    try:
        PasswordPolicy().validate(password)
    except ValidationError as exc:
        for reason in exc.reasons:
            print(f"  [!] {reason}")
        return 1

    store = UserStore(settings.database_url or None)
    try:
        user = User(
            email=args.email,
            role=args.role,
            hashed_password=PasswordHasher(rounds=settings.bcrypt_rounds).hash(password),
            is_active=not args.inactive,
        )
        user_id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    logger.info("Created user_id=%s role=%s", user_id, args.role)
    print(f"  Created {args.role} '{args.email}' (id={user_id}).")
    return 0


def purge_revoked(args: argparse.Namespace) -> int:
    settings = get_settings()
    sessions = SessionInvalidator(TokenIssuer.from_settings(settings), settings.database_url or None)
    try:
        removed = sessions.purge_expired()
    finally:
        sessions.close()
    print(f"  Removed {removed} expired revocation entr{'y' if removed == 1 else 'ies'}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Portal auth administration.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a user with a policy-checked password")
    create.add_argument("--email", required=True, help="Login email for the new user")
    create.add_argument("--role", choices=ROLES, default="candidate", help="Role (default: candidate)")
    create.add_argument("--inactive", action="store_true", help="Create the account deactivated")
    create.set_defaults(func=create_user)

    purge = sub.add_parser("purge-revoked", help="Delete revocation entries for tokens that have expired")
    purge.set_defaults(func=purge_revoked)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
