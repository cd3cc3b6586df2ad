"""Pull on-chain market state into the local cache."""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.common.errors import (
    DomainError,
    InvalidStateError,
    NotFoundError,
    NotInitializedError,
    SyncError,
)
from app.domain.market.codes import UnknownCodeError, outcome_from_chain, status_from_chain
from app.domain.market.models import Market, MarketOutcome, MarketStatus, SyncReport
from app.infra.chain.ledger_gateway import LedgerGateway
from app.infra.db.repositories.market_repo import MarketRepositoryImpl

logger = logging.getLogger(__name__)


def _reconcile(
    current: Market,
    chain_status: MarketStatus,
    chain_outcome: Optional[MarketOutcome],
) -> tuple[Optional[MarketStatus], Optional[MarketOutcome]]:
    """Status and outcome to write for a chain snapshot; None keeps the cached value.

    The contract only reports ACTIVE until it is resolved or cancelled there,
    so ACTIVE on chain never overrides the cache. A market resolved locally
    stays resolved with its own outcome and rewards.
    """
    if current.status == MarketStatus.RESOLVED:
        if chain_status != MarketStatus.RESOLVED or chain_outcome not in (None, current.outcome):
            logger.warning(
                "Market %s is resolved locally as %s but chain reports %s/%s; keeping local resolution",
                current.id,
                current.outcome.value if current.outcome else None,
                chain_status.value,
                chain_outcome.value if chain_outcome else None,
            )
        return None, None
    if chain_status == MarketStatus.ACTIVE:
        return None, None
    if chain_status == MarketStatus.RESOLVED:
        if chain_outcome is None and current.outcome is None:
            raise SyncError(f"Market {current.id} is resolved on chain without an outcome")
        return MarketStatus.RESOLVED, chain_outcome
    return chain_status, None


class MarketSyncService:
    """Chain -> cache. Never touches PENDING markets or the chain's state."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], gateway: LedgerGateway):
        self.session_factory = session_factory
        self.gateway = gateway

    async def sync_one(self, market_id: str) -> Market:
        async with self.session_factory() as session:
            market = await MarketRepositoryImpl(session).get(market_id)
        if market is None:
            raise NotFoundError("Market", market_id)
        if not market.on_chain_id:
            raise NotInitializedError()
        if market.status not in (MarketStatus.ACTIVE, MarketStatus.RESOLVED):
            raise InvalidStateError(f"Cannot sync market in {market.status.value} status")

        try:
            data = await self.gateway.get_market_data(market.on_chain_id)
            status = status_from_chain(data.status)
            outcome = outcome_from_chain(data.outcome)
        except UnknownCodeError as e:
            raise SyncError(f"Market {market_id}: {e}") from e
        except (DomainError, ValueError) as e:
            raise SyncError(f"Failed to read market {market_id} from chain: {e}") from e

        async with self.session_factory() as session:
            async with session.begin():
                repo = MarketRepositoryImpl(session)
                current = await repo.get(market_id, for_update=True)
                if current is None or current.on_chain_id != market.on_chain_id:
                    raise SyncError(f"Market {market_id} changed during sync")
                status, outcome = _reconcile(current, status, outcome)
                applied = await repo.apply_chain_state(
                    market_id,
                    market.on_chain_id,
                    status=status,
                    outcome=outcome,
                    yes_pool=data.yes_pool,
                    no_pool=data.no_pool,
                    participant_count=data.participant_count,
                )
                if not applied:
                    raise SyncError(f"Market {market_id} changed during sync")
                synced = await repo.get(market_id)

        logger.info(
            "Synced market %s from chain: %s, pools %.4f/%.4f",
            market_id,
            synced.status.value,
            synced.yes_pool,
            synced.no_pool,
        )
        return synced

    async def sync_active_markets(self) -> SyncReport:
        """Sync every ACTIVE on-chain market, continuing past individual failures."""
        async with self.session_factory() as session:
            market_ids = await MarketRepositoryImpl(session).list_syncable_ids()

        report = SyncReport(total=len(market_ids))
        for market_id in market_ids:
            try:
                await self.sync_one(market_id)
                report.succeeded += 1
            except DomainError as e:
                report.failed += 1
                report.failures[market_id] = e.message
                logger.warning("Sync failed for market %s: %s", market_id, e.message)
            except Exception as e:
                report.failed += 1
                report.failures[market_id] = str(e)
                logger.exception("Unexpected error syncing market %s", market_id)

        logger.info("Market sync finished: %d/%d succeeded", report.succeeded, report.total)
        return report
