#!/usr/bin/env python3
"""
claimgate -- Register users, log them in, and inspect accounts from a shell.

Usage:
  python main.py register alice@example.com
  python main.py register bob@example.com --role admin --token <admin JWT>
  python main.py login alice@example.com
  python main.py login alice@example.com --token-only
  python main.py passwd alice@example.com --token <alice's JWT>
  python main.py role bob@example.com webuser --token <admin JWT>
  python main.py users --token <JWT>

Secrets are prompted for (no echo) unless --password is given.

Caller identity is explicit: --token carries a JWT issued by "login". Without
it the caller is anonymous. A token whose role is ADMIN_ROLE makes the caller
privileged (may pick a role on register, change roles, see every account).

Environment variables: see core/config.py (DATABASE_URL, SECRET_KEY, DEBUG, ...).

Exit codes: 0 ok, 1 request rejected, 2 store or role registry unavailable.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.errors import AuthError, TransientError
from auth.models import UserView
from auth.service import AuthService
from auth.store import CredentialStore

logger = logging.getLogger("claimgate.cli")


def _read_secret(args: argparse.Namespace, prompt: str = "Password: ") -> str:
    if args.password is not None:
        return args.password
    return getpass.getpass(prompt)


def _print_view(view: UserView) -> None:
    flag = "verified" if view.verified else "unverified"
    print(f"  {view.identifier:<40} {view.role:<16} {view.secret:<5} {flag}")


def _run(service: AuthService, args: argparse.Namespace) -> None:
    caller = service.caller_from_token(args.token) if args.token else service.caller_from_claims(None)
    logger.debug("Caller %s (%s, privileged=%s)", caller.identifier, caller.role, caller.privileged)

    if args.command == "register":
        record = service.register(
            args.identifier,
            _read_secret(args),
            requested_role=args.role,
            caller_is_privileged=caller.privileged,
        )
        print(f"  Registered {record.identifier} ({record.role}).")

    elif args.command == "login":
        claims = service.login(args.identifier, _read_secret(args))
        token = service.issuer.encode(claims)
        if args.token_only:
            print(token)
        else:
            print(f"  Logged in as {claims.identifier} ({claims.role}).")
            print(f"  Token: {token}")

    elif args.command == "passwd":
        service.change_secret(caller, args.identifier, _read_secret(args, "New password: "))
        print(f"  Password changed for {args.identifier}.")

    elif args.command == "role":
        service.change_role(caller, args.identifier, args.new_role)
        print(f"  {args.identifier} now has role {args.new_role}.")

    elif args.command == "users":
        views = service.list_users(caller)
        if not views:
            print("  No visible users.")
        for view in views:
            _print_view(view)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claimgate",
        description="Credential verification and claims issuing.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", metavar="URL", help="Database URL (default: DATABASE_URL setting)")
    parser.add_argument("--token", metavar="JWT", help="Act as the caller identified by this token")
    parser.add_argument("--password", metavar="SECRET", help="Secret for non-interactive use (avoid in shells)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("register", help="Create a user")
    p.add_argument("identifier", metavar="EMAIL")
    p.add_argument("--role", help="Role for the new user (privileged callers only; ignored otherwise)")

    p = sub.add_parser("login", help="Verify a password and print claims and a token")
    p.add_argument("identifier", metavar="EMAIL")
    p.add_argument("--token-only", action="store_true", help="Print only the JWT")

    p = sub.add_parser("passwd", help="Change a password (owner or admin)")
    p.add_argument("identifier", metavar="EMAIL")

    p = sub.add_parser("role", help="Change a user's role (admin only)")
    p.add_argument("identifier", metavar="EMAIL")
    p.add_argument("new_role", metavar="ROLE")

    sub.add_parser("users", help="List users visible to the caller (passwords masked)")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        store = CredentialStore(db_url=args.db)
    except TransientError as exc:
        print(f"  [!] {exc.message}")
        return 2
    try:
        _run(AuthService(store), args)
    except TransientError as exc:
        print(f"  [!] {exc.message} -- try again later.")
        return 2
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
