#!/usr/bin/env python3
# src/inproto/scripts/identity_tool.py
"""Command line helper for inproto identities.

Typical usage:
  python -m inproto.scripts.identity_tool gen --store ~/.inproto/keys.json
  python -m inproto.scripts.identity_tool sign "$(python -m inproto.scripts.identity_tool digest hello)"
  python -m inproto.scripts.identity_tool open <signed-blob>
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from inproto.client.keystore import IdentityManager, JsonFileKeyStore
from inproto.core.errors import InprotoError
from inproto.services import identity

DEFAULT_STORE = Path.home() / ".inproto" / "keys.json"


def say(msg: str) -> None:
    print(msg)


def fail(msg: str) -> None:
    print(f"[identity-tool][FAIL] {msg}", file=sys.stderr)


def _manager(args: argparse.Namespace) -> IdentityManager:
    return IdentityManager(JsonFileKeyStore(args.store))


def cmd_gen(args: argparse.Namespace) -> int:
    manager = _manager(args)
    if manager.load() and not args.force:
        fail(f"{args.store} already holds an identity (use --force to replace it)")
        return 1
    keypair = manager.generate()
    say(identity.public_key_of(keypair))
    return 0


def cmd_pubkey(args: argparse.Namespace) -> int:
    pubkey = _manager(args).public_key()
    if pubkey is None:
        fail("no pubkey yet (run gen first)")
        return 1
    say(pubkey)
    return 0


def cmd_digest(args: argparse.Namespace) -> int:
    say(identity.digest(args.text))
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    keypair = _manager(args).load()
    if keypair is None:
        fail("generate a keypair first")
        return 1
    say(identity.sign(args.text, keypair))
    return 0


def cmd_open(args: argparse.Namespace) -> int:
    opened = identity.open_signed(args.blob)
    if opened is None:
        fail("signature did not verify")
        return 1
    say(f"pubkey:    {opened.pubkey}")
    say(f"timestamp: {opened.timestamp_ms}")
    say(f"payload:   {opened.payload}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage inproto identities")
    parser.add_argument("--store", type=Path, default=DEFAULT_STORE, help="Key store JSON file")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("gen", help="Generate and store a new identity")
    gen.add_argument("--force", action="store_true", help="Replace an existing identity")
    gen.set_defaults(func=cmd_gen)

    sub.add_parser("pubkey", help="Print the stored public key").set_defaults(func=cmd_pubkey)

    digest = sub.add_parser("digest", help="SHA-256 digest of text, base64 encoded")
    digest.add_argument("text")
    digest.set_defaults(func=cmd_digest)

    sign = sub.add_parser("sign", help="Sign text with the stored identity")
    sign.add_argument("text")
    sign.set_defaults(func=cmd_sign)

    open_ = sub.add_parser("open", help="Verify a signed blob and print its contents")
    open_.add_argument("blob")
    open_.set_defaults(func=cmd_open)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except InprotoError as err:
        fail(str(err))
        return 1


if __name__ == "__main__":
    sys.exit(main())
