#!/usr/bin/env python3
"""
authn-password -- operator CLI for the identity credential store.

Usage:
  python main.py create-identity --id https://example.com/i/alice --email alice@example.com --slug alice
  python main.py create-identity --id bob --email bob@example.com --password
  python main.py resolve alice@example.com
  python main.py send-passcode alice@example.com --usage verify
  python main.py set-password alice
  python main.py set-status alice inactive

Environment variables:
  DATABASE_URL     SQLAlchemy URL of the identity store (default sqlite:///authn_identities.db)
  BCRYPT_ROUNDS    bcrypt cost factor for new hashes (default 12)
  PASSCODE_LENGTH  length of generated passcodes (default 40)
  DEBUG            log at DEBUG level, same as -v (default false)
"""

import argparse
import getpass
import logging
import sys

from sqlalchemy.exc import IntegrityError

from auth.credentials import CredentialManager
from auth.dispatch import PasscodeDispatcher
from auth.errors import CredentialError
from auth.events import EventEmitter
from auth.models import PASSCODE_SENT_EVENT, CredentialChangeRequest, Identity, IdentityStatus, PasscodeSent
from auth.store import IdentityStore
from core.config import get_settings


def _print_passcodes(event_type: str, payload: PasscodeSent) -> None:
    """Operator delivery: the CLI user hands the passcodes over out of band."""
    print(f"  {payload.usage.value} passcode(s) for {payload.contact_point}:")
    for identity_id, passcode in payload.passcodes:
        print(f"    {identity_id}  {passcode}")


def _prompt_password(prompt: str = "New password: ") -> str:
    first = getpass.getpass(prompt)
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    return first


def _cmd_create_identity(args: argparse.Namespace, manager: CredentialManager, **_) -> int:
    identity = Identity(
        id=args.id,
        email=args.email,
        slug=args.slug,
        label=args.label or args.slug or args.email,
        role=args.role,
    )
    password = _prompt_password() if args.password else None
    try:
        manager.create_identity(identity, password=password)
    except IntegrityError:
        print(f"  [!] An identity with id '{identity.id}' or slug '{identity.slug}' already exists.")
        return 1
    print(f"  Created {identity.id}")
    return 0


def _cmd_resolve(args: argparse.Namespace, manager: CredentialManager, **_) -> int:
    ids = manager.resolver.resolve_identifier(args.identifier)
    if not ids:
        print(f"  [!] No identity matches '{args.identifier}'.")
        return 1
    for identity in manager.store.get_identities(ids):
        print(f"  {identity.id}  slug={identity.slug or '-'}  email={identity.email}  status={identity.status.value}")
    return 0


def _cmd_send_passcode(args: argparse.Namespace, dispatcher: PasscodeDispatcher, **_) -> int:
    dispatcher.send_passcodes_for(args.identifier, args.usage)
    return 0


def _cmd_set_password(args: argparse.Namespace, manager: CredentialManager, **_) -> int:
    identity_id = manager.resolver.resolve_identity_slug(args.identity, error_if_missing=True)
    change = manager.set_credentials(None, identity_id, CredentialChangeRequest(new_password=_prompt_password()))
    print(f"  Updated {', '.join(sorted(change.fields))} for {identity_id}")
    return 0


def _cmd_set_status(args: argparse.Namespace, manager: CredentialManager, **_) -> int:
    identity_id = manager.resolver.resolve_identity_slug(args.identity, error_if_missing=True)
    manager.store.set_status(identity_id, IdentityStatus(args.status))
    print(f"  {identity_id} is now {args.status}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authn-password",
        description="Manage identity passwords and passcodes.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", metavar="URL", help="Identity store URL (overrides DATABASE_URL)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-identity", help="Create an identity and provision its credentials")
    create.add_argument("--id", required=True, help="Stable identity id")
    create.add_argument("--email", required=True, help="Contact point (may be shared)")
    create.add_argument("--slug", help="Unique short name")
    create.add_argument("--label", help="Display label shown when a login is ambiguous")
    create.add_argument("--role", choices=["user", "admin"], default="user")
    create.add_argument(
        "--password",
        action="store_true",
        help="Prompt for a password (otherwise an unknown random one is set)",
    )
    create.set_defaults(func=_cmd_create_identity)

    resolve = sub.add_parser("resolve", help="Show the identities an id, slug or email resolves to")
    resolve.add_argument("identifier")
    resolve.set_defaults(func=_cmd_resolve)

    send = sub.add_parser("send-passcode", help="Issue fresh passcodes for an identifier and print them")
    send.add_argument("identifier")
    send.add_argument("--usage", choices=["reset", "verify"], default="reset")
    send.set_defaults(func=_cmd_send_passcode)

    set_pw = sub.add_parser("set-password", help="Set an identity's password (prompts)")
    set_pw.add_argument("identity", help="Identity id or slug")
    set_pw.set_defaults(func=_cmd_set_password)

    set_status = sub.add_parser("set-status", help="Activate or deactivate an identity")
    set_status.add_argument("identity", help="Identity id or slug")
    set_status.add_argument("status", choices=[s.value for s in IdentityStatus])
    set_status.set_defaults(func=_cmd_set_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose or get_settings().debug else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    store = IdentityStore(args.db or get_settings().database_url)
    emitter = EventEmitter()
    emitter.on(PASSCODE_SENT_EVENT, _print_passcodes)
    manager = CredentialManager(store)
    dispatcher = PasscodeDispatcher(manager, emitter)
    try:
        return args.func(args, manager=manager, dispatcher=dispatcher)
    except CredentialError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        emitter.close()
        store.close()


if __name__ == "__main__":
    sys.exit(main())
