#!/usr/bin/env python3
"""
Wallet Ticket Resolver CLI

Resolves the tickets a wallet owns against the configured ledger and
prints them grouped into upcoming, used and expired.

Usage:
    python tools/resolve_tickets.py 0xabc...
    python tools/resolve_tickets.py 0xabc... --json
    python tools/resolve_tickets.py --demo

Environment:
    TICKETVAULT_RPC_URL / TICKETVAULT_CONTRACT_ADDRESS select the chain;
    without them an in-memory ledger is used.

Exit codes:
    0 - Resolved
    1 - Event log could not be scanned
    2 - Invalid arguments or configuration
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).parent.parent))

from ticketvault.chain.factory import create_ledger
from ticketvault.chain.memory import DEMO_WALLET, InMemoryTicketLedger, seed_demo_tickets
from ticketvault.config import ResolverConfig
from ticketvault.core import ScanError, TicketResolver, WalletTickets
from ticketvault.observability import setup_logging


def print_text(tickets: WalletTickets) -> None:
    buckets = tickets.buckets
    print(f"Wallet: {tickets.address}")
    print(f"Tickets: {buckets.total} (skipped {len(tickets.result.skipped)})")

    for title, views in (
        ("Upcoming Events", buckets.upcoming),
        ("Used Tickets", buckets.used),
        ("Expired Tickets", buckets.expired),
    ):
        if not views:
            continue
        print()
        print(title)
        print("-" * len(title))
        for view in views:
            lock = " [locked]" if view.locked else ""
            print(f"  #{view.token_id:<5} {view.event_name} - {view.formatted_date}{lock}")
            print(f"         {view.image_url}")

    if tickets.result.skipped:
        print()
        print("Skipped")
        print("-------")
        for outcome in tickets.result.skipped:
            print(f"  #{outcome.token_id:<5} {outcome.reason.value} {outcome.detail}")


def print_json(tickets: WalletTickets) -> None:
    payload = {
        "address": tickets.address,
        **tickets.buckets.model_dump(mode="json"),
        "skipped": [
            {"token_id": o.token_id, "reason": o.reason.value, "detail": o.detail}
            for o in tickets.result.skipped
        ],
    }
    print(json.dumps(payload, indent=2))


async def run(address: str, config: ResolverConfig, demo: bool = False) -> WalletTickets:
    if demo:
        # Seeded in-memory ledger, whatever TICKETVAULT_LEDGER_DRIVER says
        ledger = InMemoryTicketLedger()
        seed_demo_tickets(ledger)
    else:
        ledger = create_ledger(config)
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        ) as client:
            resolver = TicketResolver(ledger, client, config)
            return await resolver.resolve(address)
    finally:
        await ledger.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Resolve the tickets a wallet owns")
    parser.add_argument("address", nargs="?", help="Wallet address")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--demo", action="store_true", help="Use a seeded in-memory ledger")
    args = parser.parse_args()

    setup_logging()

    try:
        config = ResolverConfig.from_env()
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 2

    address = args.address
    if args.demo:
        address = address or DEMO_WALLET
    if not address:
        parser.error("address is required unless --demo is given")

    try:
        tickets = asyncio.run(run(address, config, demo=args.demo))
    except ScanError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.json:
        print_json(tickets)
    else:
        print_text(tickets)
    return 0


if __name__ == "__main__":
    sys.exit(main())
