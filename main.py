#!/usr/bin/env python3
"""
ChatLink -- operator command line.

Usage:
  python main.py gen-key                 Print a fresh CRYPTO_KEY value
  python main.py cleanups                List pending remote cleanup entries
  python main.py cleanups --json         Same, as JSON
  python main.py resolve 12              Mark cleanup entry 12 as resolved

The cleanup commands read the remote_cleanup outbox: remote chat accounts
that changed on the platform without the matching local write. Fixing the
remote side is a manual step; `resolve` only records that it was done.

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the user database (default sqlite:///chatlink.db)
  SECRET_KEY, CRYPTO_KEY
                 Validated as for the API server (or set DEBUG=true).
                 gen-key reads no settings.
"""

import argparse
import json
import sys
from dataclasses import asdict
from typing import Optional

from auth.store import UserStore
from chat.crypto import generate_key
from core.config import get_settings


def _cmd_gen_key(args: argparse.Namespace) -> int:
    print(generate_key())
    return 0


def _cmd_cleanups(args: argparse.Namespace) -> int:
    store = UserStore(get_settings().database_url)
    try:
        entries = store.list_pending_cleanups()
    finally:
        store.close()

    if args.json:
        # The encrypted secret is only useful to a reconciliation job.
        print(json.dumps([{k: v for k, v in asdict(e).items() if k != "remote_secret_enc"} for e in entries], indent=2))
        return 0
    if not entries:
        print("  No pending remote cleanups.")
        return 0
    print(f"  {'ID':>5}  {'REMOTE ID':>10}  {'REASON':<26} {'LOGIN':<32} CREATED")
    for e in entries:
        remote_id = "-" if e.remote_id is None else e.remote_id
        print(f"  {e.id:>5}  {remote_id:>10}  {e.reason:<26} {e.login:<32} {e.created_at}")
    return 0


def _cmd_resolve(args: argparse.Namespace) -> int:
    store = UserStore(get_settings().database_url)
    try:
        resolved = store.resolve_cleanup(args.entry_id)
    finally:
        store.close()
    if not resolved:
        print(f"  [!] Cleanup entry {args.entry_id} not found or already resolved.")
        return 1
    print(f"  Cleanup entry {args.entry_id} marked resolved.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatlink", description="ChatLink operator commands.")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("gen-key", help="print a new CRYPTO_KEY")
    gen.set_defaults(func=_cmd_gen_key)

    cleanups = sub.add_parser("cleanups", help="list pending remote cleanup entries")
    cleanups.add_argument("--json", action="store_true", help="output JSON")
    cleanups.set_defaults(func=_cmd_cleanups)

    resolve = sub.add_parser("resolve", help="mark a cleanup entry resolved")
    resolve.add_argument("entry_id", type=int)
    resolve.set_defaults(func=_cmd_resolve)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
