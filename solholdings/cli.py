from __future__ import annotations

import asyncio
import logging
import sys
from argparse import ArgumentParser, Namespace
from typing import Sequence

from .config import HoldingsConfig, load_config
from .http import close_session, dumps
from .logging_utils import setup_stdout_logging
from .metadata import MetadataResolver
from .mints import program_label
from .rpc import LedgerClient
from .view import load_holdings


def _build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Inspect Solana token holdings and metadata")
    parser.add_argument("--rpc-url", help="Solana JSON-RPC endpoint (overrides SOLANA_RPC_URL)")
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_p = subparsers.add_parser("scan", help="List non-zero token holdings of an owner")
    scan_p.add_argument("owner")
    scan_p.add_argument("--query", default="", help="Filter by mint, name or symbol")
    scan_p.add_argument(
        "--program",
        action="append",
        dest="programs",
        help="Token program id to scan (repeatable, defaults to SPL and Token-2022)",
    )
    scan_p.add_argument("--json", action="store_true", help="Print rows as JSON")

    resolve_p = subparsers.add_parser("resolve", help="Resolve metadata for mint addresses")
    resolve_p.add_argument("mints", nargs="+")
    resolve_p.add_argument("--json", action="store_true", help="Print metadata as JSON")
    return parser


async def _scan(args: Namespace, config: HoldingsConfig) -> int:
    program_ids = args.programs or config.program_ids
    async with LedgerClient.from_url(str(config.rpc_url), timeout=config.http_timeout) as client:
        resolver = MetadataResolver.from_config(config, client)
        snapshot = await load_holdings(
            args.owner,
            client=client,
            resolver=resolver,
            program_ids=program_ids,
            max_concurrency=config.max_concurrency,
        )
    rows = snapshot.rows(args.query)
    if args.json:
        print(dumps([row.as_dict() for row in rows]).decode())
        return 0
    if not snapshot.holdings:
        print("No tokens found in wallet")
        return 0
    summary = snapshot.summary()
    parts = [f"{program_label(pid)}: {count}" for pid, count in summary.by_program.items()]
    print(f"{summary.total} tokens found ({', '.join(parts)})")
    if not rows:
        print("No tokens match your search")
        return 0
    for row in rows:
        print(
            f"{row.metadata.symbol:<10} {row.metadata.name:<32} "
            f"{row.display_amount:>24}  {row.short_mint}"
        )
    return 0


async def _resolve(args: Namespace, config: HoldingsConfig) -> int:
    async with LedgerClient.from_url(str(config.rpc_url), timeout=config.http_timeout) as client:
        resolver = MetadataResolver.from_config(config, client)
        resolved = await resolver.resolve_many(args.mints)
    if args.json:
        print(dumps({mint: meta.as_dict() for mint, meta in resolved.items()}).decode())
        return 0
    for mint, meta in resolved.items():
        print(f"{mint}  {meta.symbol:<10} {meta.name:<32} decimals={meta.decimals}  {meta.icon}")
    return 0


async def _run(args: Namespace, config: HoldingsConfig) -> int:
    try:
        if args.command == "scan":
            return await _scan(args, config)
        return await _resolve(args, config)
    finally:
        await close_session()


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_stdout_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        json=args.log_json,
    )
    try:
        config = load_config({"rpc_url": args.rpc_url})
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    raise SystemExit(main())
