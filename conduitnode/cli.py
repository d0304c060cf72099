"""Command-line parser for the node with live console."""

from __future__ import annotations

import argparse
from typing import Sequence

DEFAULT_STORAGE_DIR = "/var/lib/conduit-node"
DEFAULT_RPC_CREDENTIAL = "lightning"


def _u16(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 0 <= number <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"port out of range: {value}")
    return number


def _u64(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if not 0 <= number <= 0xFFFFFFFFFFFFFFFF:
        raise argparse.ArgumentTypeError(f"number out of range: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conduit-setup", description="Conduit Lightning node with live console"
    )
    parser.add_argument("--storage-dir", default=DEFAULT_STORAGE_DIR,
                        help="Storage directory for node data")
    parser.add_argument("--port", type=_u16, default=9735, help="Lightning listening port")
    parser.add_argument("--esplora", help="Esplora server URL")
    parser.add_argument("--rpc-host", help="Bitcoind RPC host")
    parser.add_argument("--rpc-port", type=_u16, default=38332, help="Bitcoind RPC port")
    parser.add_argument("--rpc-user", default=DEFAULT_RPC_CREDENTIAL, help="Bitcoind RPC username")
    parser.add_argument("--rpc-password", default=DEFAULT_RPC_CREDENTIAL,
                        help="Bitcoind RPC password")
    parser.add_argument("--http-port", type=_u16, help="HTTP port for the live console")
    parser.add_argument("--registry-url", help="Registry URL for content discovery")
    parser.add_argument("--public-ip", help="Public IP/hostname used in registry announcements")
    parser.add_argument("--ads-dir", help="Enable advertiser role (arbitrary label)")
    parser.add_argument("--alias", help="Human-readable node alias (max 32 bytes)")
    parser.add_argument("--dashboard", help="Path to dashboard HTML file")
    parser.add_argument("--ui-dist", help="Path to built frontend directory")
    parser.add_argument("--p2p", action="store_true", help="Enable P2P chunk transport")

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    sub.add_parser("address", help="Print on-chain wallet address")
    sub.add_parser("info", help="Print node ID, addresses, balances")

    open_channel = sub.add_parser("open-channel", help="Open a channel to a peer")
    open_channel.add_argument("--node-id", required=True)
    open_channel.add_argument("--addr", required=True)
    open_channel.add_argument("--amount", type=_u64, default=100000)

    sub.add_parser("channels", help="List open channels")

    register = sub.add_parser("register", help="Register content in the catalog")
    register.add_argument("--file", required=True, help="Path to the file to register")
    register.add_argument("--price", type=_u64, required=True, help="Price in satoshis")

    sell = sub.add_parser("sell", help="Sell content: encrypt, invoice, wait for payment")
    sell.add_argument("--file", required=True, help="Path to the file to sell")
    sell.add_argument("--price", type=_u64, required=True, help="Price in satoshis")

    sub.add_parser("serve", help="Start node with HTTP API only")

    seed = sub.add_parser("seed", help="Seed content wrapped with a transport key")
    seed.add_argument("--encrypted-file", required=True)
    seed.add_argument("--encrypted-hash", required=True)
    seed.add_argument("--transport-price", type=_u64, required=True)
    seed.add_argument("--chunks", help='Chunks to seed, e.g. "0,1,2,5-9"; omit for all')

    buy = sub.add_parser("buy", help="Buy content: pay invoice, decrypt, verify")
    buy.add_argument("--invoice", required=True)
    buy.add_argument("--encrypted-file", required=True)
    buy.add_argument("--hash", required=True)
    buy.add_argument("--output", required=True)

    buy_pre = sub.add_parser("buy-pre", help="Buy content using proxy re-encryption")
    buy_pre.add_argument("--creator-url", required=True)
    buy_pre.add_argument("--content-hash", required=True)
    buy_pre.add_argument("--seeder-url")
    buy_pre.add_argument("--output", required=True)

    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments; exits with status 2 on invalid input."""
    return build_parser().parse_args(argv)