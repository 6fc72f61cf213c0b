# src/creatorhub/scripts/link_wallet.py
"""
Operator utility for wallet links and development tokens.

Usage:
  python -m creatorhub.scripts.link_wallet init-db
  python -m creatorhub.scripts.link_wallet link <user-id> <wallet-address>
  python -m creatorhub.scripts.link_wallet list <user-id>
  python -m creatorhub.scripts.link_wallet token <user-id> [--minutes N]
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from creatorhub.db.session import create_tables, session_scope
from creatorhub.services.identity import IdentityService, create_access_token
from creatorhub.utils.validation import is_valid_wallet_address


def _link(user_id: str, address: str) -> int:
    if not is_valid_wallet_address(address):
        print(f"Invalid wallet address: {address}", file=sys.stderr)
        return 1
    with session_scope() as db:
        wallet = IdentityService(db).link_wallet(user_id, address)
    print(f"Linked {wallet.address} to {user_id}")
    return 0


def _list(user_id: str) -> int:
    with session_scope() as db:
        wallets = IdentityService(db).wallets_for(user_id)
    for address in wallets:
        print(address)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage CreatorHub wallet links")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")

    link = commands.add_parser("link", help="Link a wallet to a user")
    link.add_argument("user_id")
    link.add_argument("address")

    listing = commands.add_parser("list", help="List wallets linked to a user")
    listing.add_argument("user_id")

    token = commands.add_parser("token", help="Mint a bearer token for a user")
    token.add_argument("user_id")
    token.add_argument("--minutes", type=int, default=None)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "init-db":
        create_tables()
        print("Database tables created")
        return 0
    if args.command == "link":
        return _link(args.user_id, args.address)
    if args.command == "list":
        return _list(args.user_id)
    print(create_access_token(args.user_id, args.minutes))
    return 0


if __name__ == "__main__":
    sys.exit(main())
