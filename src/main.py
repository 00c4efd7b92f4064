"""
Command line interface for the Holder Tracker.

Usage::

    python src/main.py snapshot --mint <TOKEN_MINT>
    python src/main.py backfill --mint <TOKEN_MINT>
    python src/main.py run --mint <TOKEN_MINT>
    python src/main.py serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import os

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

from config import API_HOST, API_PORT, TOKEN_MINT
from holder_tracker.logging_config import setup_logging


async def _snapshot(mint: str, as_json: bool) -> None:
    from holder_tracker.data_sources._clients import close_clients, get_rpc_client, get_store
    from holder_tracker.holder_snapshot import build_snapshot

    try:
        wallets = await build_snapshot(mint, rpc=get_rpc_client(), store=get_store())
    finally:
        await close_clients()

    if as_json:
        print(json.dumps([w.model_dump() for w in wallets], indent=2))
        return

    print("=" * 72)
    print(f"  Top holders – {mint}")
    print("=" * 72)
    for w in wallets:
        print(f"  {w.rank:>3}. {w.address:44s} {w.balance:>18,.2f}  {w.share_pct:6.2f}%")
    print("=" * 72)


async def _backfill(mint: str) -> None:
    from holder_tracker.backfill_scanner import BackfillScanner
    from holder_tracker.data_sources._clients import close_clients, get_rpc_client, get_store
    from holder_tracker.tracker import HolderTracker

    rpc, store = get_rpc_client(), get_store()
    try:
        tracker = HolderTracker(mint=mint, rpc=rpc, store=store)
        await tracker.seed_registry()
        scanner = BackfillScanner(mint=mint, rpc=rpc, store=store, registry=tracker.registry)
        progress = await scanner.run()
    finally:
        await close_clients()
    print(json.dumps(progress.as_dict(), indent=2))


async def _run(mint: str) -> None:
    from holder_tracker.data_sources._clients import close_clients, get_rpc_client, get_store
    from holder_tracker.tracker import HolderTracker

    tracker = HolderTracker(mint=mint, rpc=get_rpc_client(), store=get_store())
    try:
        await tracker.run_forever()
    finally:
        await close_clients()


def _serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("holder_tracker.api:app", host=host, port=port)


def main() -> None:
    """Entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Track top holders and buy/sell flow of a Solana SPL token"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("snapshot", "Build and print the top-holder snapshot"),
        ("backfill", "Replay recent transfers for the monitored wallets"),
        ("run", "Run snapshot, backfill and live classification until interrupted"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--mint",
            required=not TOKEN_MINT,
            default=TOKEN_MINT or None,
            help="Mint address of the tracked token (default: $TOKEN_MINT)",
        )
        if name == "snapshot":
            p.add_argument("--json", action="store_true", dest="as_json",
                           help="Output result as raw JSON")

    serve = sub.add_parser("serve", help="Run the HTTP API (starts the pipeline if TOKEN_MINT is set)")
    serve.add_argument("--host", default=API_HOST)
    serve.add_argument("--port", type=int, default=API_PORT)

    args = parser.parse_args()
    setup_logging()

    if args.command == "snapshot":
        asyncio.run(_snapshot(args.mint, args.as_json))
    elif args.command == "backfill":
        asyncio.run(_backfill(args.mint))
    elif args.command == "run":
        try:
            asyncio.run(_run(args.mint))
        except KeyboardInterrupt:
            pass
    else:
        _serve(args.host, args.port)


if __name__ == "__main__":
    main()
