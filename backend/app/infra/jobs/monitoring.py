"""Periodic background jobs: relay wallet health, lock janitor and market sync."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.domain.market.initialization import InitializationLockManager
from app.domain.market.models import SyncReport
from app.domain.market.sync import MarketSyncService
from app.infra.chain.relay_signer import BalanceReport, RelaySigner

logger = logging.getLogger(__name__)


async def run_monitoring(signer: RelaySigner, locks: InitializationLockManager) -> Optional[BalanceReport]:
    """Check relay balance and sweep expired initialization locks. Never raises."""
    report = None
    try:
        report = await signer.monitor_balance()
    except Exception:
        logger.exception("Relay wallet monitoring failed")
    try:
        await locks.sweep_expired()
    except Exception:
        logger.exception("Initialization lock sweep failed")
    return report


async def run_market_sync(sync: MarketSyncService) -> Optional[SyncReport]:
    """Reconcile all active markets with the chain. Never raises."""
    try:
        return await sync.sync_active_markets()
    except Exception:
        logger.exception("Market sync job failed")
        return None


async def periodic(name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
    """Run ``job`` every ``interval`` seconds until cancelled."""
    logger.info("Background job %s started (every %.0fs)", name, interval)
    while True:
        try:
            await job()
        except Exception:
            logger.exception("Background job %s failed", name)
        await asyncio.sleep(interval)


def start_background_jobs(container, settings) -> list[asyncio.Task]:
    """Schedule monitoring and sync loops; the caller cancels them on shutdown."""
    return [
        asyncio.create_task(
            periodic(
                "relay-monitoring",
                settings.monitoring_interval_seconds,
                lambda: run_monitoring(container.signer, container.locks),
            )
        ),
        asyncio.create_task(
            periodic(
                "market-sync",
                settings.market_sync_interval_seconds,
                lambda: run_market_sync(container.sync),
            )
        ),
    ]


async def stop_background_jobs(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
