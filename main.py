#!/usr/bin/env python3
"""
Blackbook -- operator CLI for the authentication core.

Runs one authentication operation against the configured account database
and prints the outcome. Passwords are always prompted for, never taken from
the command line.

Usage:
  python main.py login a@b.com
  python main.py token BIGLONGTOKEN
  python main.py change-password a@b.com
  python main.py reset-token a@b.com
  python main.py validate-reset RESETTOKEN
  python main.py session USERKEY

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the account database (default: auth/blackbook_auth.db)
  LOG_LEVEL     Logging level (default: INFO)
"""

import argparse
import logging
from getpass import getpass
from typing import Optional

from auth.models import Account
from auth.result import Result
from auth.service import AuthenticationService
from auth.store import AccountStore
from core.config import get_settings

logger = logging.getLogger("blackbook.cli")


def _print_account(account: Account) -> None:
    print(f"  id:         {account.id}")
    print(f"  email:      {account.email}")
    print(f"  status:     {account.status}")
    last_login = account.last_login.isoformat() if account.last_login else "never"
    print(f"  last login: {last_login}")


def _report(result: Result, success_message: str) -> int:
    """Print a Result and return the process exit code.

    Failures print the public message, which does not distinguish an unknown
    email from a wrong password.
    """
    if not result.ok:
        print(f"  [!] {result.error.public_message}")
        return 1
    print(f"  {success_message}")
    if isinstance(result.value, Account):
        _print_account(result.value)
    return 0


def run(args: argparse.Namespace, service: AuthenticationService) -> int:
    """Dispatch one parsed command to the service and return the exit code."""
    if args.command == "login":
        password = getpass("Password: ")
        return _report(service.authenticate_by_password(args.email, password), "Logged in.")

    if args.command == "token":
        return _report(service.authenticate_by_token(args.token), "Logged in.")

    if args.command == "change-password":
        old_password = getpass("Current password: ")
        new_password = getpass("New password: ")
        if new_password != getpass("Repeat new password: "):
            print("  [!] New passwords do not match.")
            return 1
        return _report(service.change_password(args.email, old_password, new_password), "Password changed.")

    if args.command == "reset-token":
        result = service.issue_reset_token(args.email)
        if result.ok:
            print(f"  Reset token: {result.value}")
            return 0
        return _report(result, "")

    if args.command == "validate-reset":
        return _report(service.validate_reset_token(args.token), "Reset token is valid.")

    if args.command == "session":
        return _report(service.resolve_session(args.key), "Session key is valid.")

    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blackbook",
        description="Credential and token authentication for Blackbook accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py login a@b.com
  python main.py reset-token a@b.com
  DATABASE_URL=sqlite:///accounts.db python main.py session USERKEY
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    login = sub.add_parser("login", help="Log in with email and password (prompts for the password)")
    login.add_argument("email")

    token = sub.add_parser("token", help="Log in with an account's static login token")
    token.add_argument("token")

    change = sub.add_parser("change-password", help="Change a password (prompts for old and new)")
    change.add_argument("email")

    reset = sub.add_parser("reset-token", help="Issue a password reset token valid for 24 hours")
    reset.add_argument("email")

    validate = sub.add_parser("validate-reset", help="Check that a reset token exists and has not expired")
    validate.add_argument("token")

    session = sub.add_parser("session", help="Resolve the account for a session key")
    session.add_argument("key")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    store = AccountStore(settings.database_url)
    try:
        return run(args, AuthenticationService(store))
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
