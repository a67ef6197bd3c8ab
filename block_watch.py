#!/usr/bin/env python3
"""
block_watch.py — Watch blocks and report Flashbots bundle issues (terminal + Discord).

Issues:
1. Failed Flashbots (or other 0-gas) transaction
2. Bundle out of order by effective gas price
3. Bundle effective gas price is lower than the lowest non-fb tx gas price
4. Bundle pays zero or negative fee

The Flashbots blocks API lags a few blocks behind the chain, so new blocks
are kept in a backlog until the API has indexed them.

Usage:
  python block_watch.py -eth http://localhost:8545 -block 12999999
  python block_watch.py -eth http://localhost:8545 -watch -silent -discord
"""
from __future__ import annotations

import argparse
import os
import sys
import time
from functools import partial
from typing import List, Optional

import flashbots_api
from block_check import BlockCheckError, check_block
from chain import ChainError, HeadPoller, connect, fetch_block_with_receipts, network_name
from dispatcher import CheckDispatcher
from miner_ledger import MinerErrorLedger
from notify import ConfigError, NotificationSink
from reconcile import ReconciliationLoop

__version__ = "0.1.0"

DEFAULT_ETH_NODE = os.getenv("ETH_NODE", "")
DEFAULT_TIMEOUT = int(os.getenv("BLOCK_WATCH_TIMEOUT", "20"))
DEFAULT_POLL_INTERVAL = float(os.getenv("BLOCK_WATCH_POLL_INTERVAL", "2.0"))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Watch new blocks and report Flashbots bundle anomalies.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("-eth", "--eth", default=DEFAULT_ETH_NODE, help="Ethereum node URI (default from ETH_NODE env)")
    p.add_argument("-block", "--block", type=int, default=0, help="Specific block to check")
    p.add_argument("-watch", "--watch", action="store_true", help="Watch and process new blocks")
    p.add_argument("-silent", "--silent", action="store_true", help="Don't print info about every block")
    p.add_argument("-discord", "--discord", action="store_true",
                   help="Send errors to Discord (requires DISCORD_WEBHOOK env)")
    p.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="RPC and HTTP timeout in seconds")
    p.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL,
                   help="Seconds between head polls in watch mode")
    p.add_argument("--api-url", default=flashbots_api.DEFAULT_API_URL, help="Flashbots blocks API URL")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def check_one(w3, height: int, get_blocks) -> int:
    block = fetch_block_with_receipts(w3, height)
    try:
        check = check_block(block, get_blocks=get_blocks)
    except BlockCheckError as e:
        print(f"❌ Check at height error: {e}", file=sys.stderr)
        return 1
    print(check.sprint(markdown=False))
    return 0


def watch(w3, args: argparse.Namespace, sink: NotificationSink, get_blocks) -> None:
    dispatcher = CheckDispatcher(
        ledger=MinerErrorLedger(),
        sink=sink,
        checker=partial(check_block, get_blocks=get_blocks),
    )
    loop = ReconciliationLoop(
        fetch_block=partial(fetch_block_with_receipts, w3),
        dispatcher=dispatcher,
        sink=sink,
        get_blocks=get_blocks,
    )
    print(f"👀 Start watching... (poll every {args.poll_interval}s)")
    loop.run(HeadPoller(w3, poll_interval=args.poll_interval))


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        sink = NotificationSink.from_env(args.discord, silent=args.silent, timeout=args.timeout)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    if not args.eth:
        print("❌ Pass a valid eth node with -eth argument or ETH_NODE env var.", file=sys.stderr)
        return 1

    get_blocks = partial(flashbots_api.get_blocks, url=args.api_url, timeout=args.timeout)

    start = time.time()
    try:
        w3 = connect(args.eth, timeout=args.timeout)
        try:
            cid = int(w3.eth.chain_id)
        except Exception:
            cid = None
        print(f"🌐 Connected to {network_name(cid)} (chainId {cid}) in {time.time() - start:.2f}s",
              file=sys.stderr)

        if args.block:
            rc = check_one(w3, args.block, get_blocks)
            if rc != 0 or not args.watch:
                return rc

        if args.watch:
            watch(w3, args, sink, get_blocks)
    except ChainError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        sys.exit(1)
