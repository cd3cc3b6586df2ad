#!/usr/bin/env python3
"""Operator tasks for the relay wallet and market cache.

Usage:
    python scripts/relay_wallet.py balance
    python scripts/relay_wallet.py monitor
    python scripts/relay_wallet.py sweep-locks
    python scripts/relay_wallet.py sync [MARKET_ID]
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.domain.common.errors import DomainError
from app.services.container import close_container, get_container


async def show_balance() -> int:
    container = get_container()
    signer = container.signer
    if not container.wallet.is_configured:
        print("❌ Relay wallet not configured (set RELAY_WALLET_PRIVATE_KEY)")
        return 1
    balance = await signer.get_balance()
    print(f"Address:   {signer.get_address()}")
    print(f"Balance:   {balance:.4f} MOVE")
    print(f"Threshold: {signer.min_balance:.4f} MOVE (+{signer.gas_buffer} gas buffer)")
    return 0


async def monitor() -> int:
    report = await get_container().signer.monitor_balance()
    state = "✅ healthy" if report.healthy else "⚠️  low"
    print(f"{state}: {report.balance:.4f} MOVE (threshold {report.threshold:.4f}) {report.address or ''}")
    return 0 if report.healthy else 1


async def sweep_locks() -> int:
    deleted = await get_container().locks.sweep_expired()
    print(f"Removed {deleted} expired initialization lock(s)")
    return 0


async def sync(market_id: str | None) -> int:
    service = get_container().sync
    if market_id:
        try:
            market = await service.sync_one(market_id)
        except DomainError as e:
            print(f"❌ {e.code}: {e.message}")
            return 1
        print(f"✅ {market.id}: {market.status.value} yes={market.yes_pool} no={market.no_pool}")
        return 0
    report = await service.sync_active_markets()
    print(f"Synced {report.succeeded}/{report.total} markets")
    for failed_id, reason in report.failures.items():
        print(f"   ❌ {failed_id}: {reason}")
    return 0 if report.failed == 0 else 1


async def run(args: argparse.Namespace) -> int:
    try:
        if args.command == "balance":
            return await show_balance()
        if args.command == "monitor":
            return await monitor()
        if args.command == "sweep-locks":
            return await sweep_locks()
        return await sync(args.market_id)
    finally:
        await close_container()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("balance", help="Show relay wallet address and balance")
    sub.add_parser("monitor", help="Run the balance monitor once")
    sub.add_parser("sweep-locks", help="Delete expired initialization locks")
    sync_parser = sub.add_parser("sync", help="Sync one market, or every active market")
    sync_parser.add_argument("market_id", nargs="?")
    return asyncio.run(run(parser.parse_args()))


if __name__ == "__main__":
    sys.exit(main())
