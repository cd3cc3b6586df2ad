"""Market lifecycle: off-chain creation, on-chain initialization, reads and voting."""
import asyncio
import calendar
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.common.errors import (
    DomainError,
    DuplicateVoteError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.domain.common.types import generate_id, utcnow
from app.domain.market.codes import market_type_to_chain
from app.domain.market.initialization import InitializationLockManager, Lease
from app.domain.market.models import (
    CreateMarketInput,
    InitializationResult,
    Market,
    MarketStatus,
    MarketView,
    OnChainMarketData,
    Vote,
    VotePrediction,
)
from app.infra.chain.ledger_gateway import LedgerGateway
from app.infra.chain.relay_signer import MarketCreationParams, RelaySigner
from app.infra.db.repositories.market_repo import MarketRepositoryImpl, VoteRepositoryImpl
from app.infra.db.repositories.user_repo import GroupRepositoryImpl

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


class MarketLifecycleService:
    """Owns the PENDING -> ACTIVE transition and everything that happens before resolution."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: LedgerGateway,
        signer: RelaySigner,
        locks: InitializationLockManager,
        initialize_timeout: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.signer = signer
        self.locks = locks
        self.initialize_timeout = initialize_timeout
        self.clock = clock

    # ==================== Creation ====================

    async def create_off_chain(self, data: CreateMarketInput) -> Market:
        """Persist a PENDING market. No chain interaction."""
        title = (data.title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if data.min_stake <= 0:
            raise ValidationError("Minimum stake must be positive")
        if data.max_stake is not None and data.max_stake < data.min_stake:
            raise ValidationError("Maximum stake must be greater than or equal to minimum stake")
        now = self.clock()
        if data.end_date <= now:
            raise ValidationError("End date must be in the future")

        market = Market(
            id=generate_id(),
            on_chain_id=None,
            group_id=data.group_id,
            title=title,
            description=data.description,
            image_url=data.image_url,
            market_type=data.market_type,
            end_date=data.end_date,
            min_stake=data.min_stake,
            max_stake=data.max_stake,
            status=MarketStatus.PENDING,
            outcome=None,
            created_by_id=data.created_by_id,
            created_at=now,
            updated_at=now,
        )
        async with self.session_factory() as session:
            async with session.begin():
                role = await GroupRepositoryImpl(session).get_member_role(data.group_id, data.created_by_id)
                if role is None:
                    raise ForbiddenError("Not a member of this group")
                market = await MarketRepositoryImpl(session).create(market)
        logger.info("Created market %s in group %s (PENDING)", market.id, market.group_id)
        return market

    # ==================== Initialization ====================

    async def initialize(self, market_id: str) -> InitializationResult:
        """Commit a PENDING market on chain exactly once.

        Idempotent: an already ACTIVE market returns its existing on-chain id
        without touching the chain.
        """
        claim = await asyncio.wait_for(self._claim(market_id), timeout=self.initialize_timeout)
        if isinstance(claim, InitializationResult):
            return claim
        market, lease = claim

        try:
            if not await self.signer.has_sufficient_balance():
                balance = await self.signer.get_balance()
                raise InsufficientBalanceError(
                    f"Relay wallet balance too low to initialize market: {balance:.4f} MOVE",
                    balance=balance,
                )
            receipt = await self.signer.submit_market_creation(self._creation_params(market))

            async with self.session_factory() as session:
                async with session.begin():
                    activated = await MarketRepositoryImpl(session).activate(market_id, receipt.on_chain_id)
                    if not activated:
                        # The lease makes this unreachable unless it expired mid-submission
                        logger.error(
                            "Market %s left PENDING while initializing; on-chain id %s not recorded",
                            market_id,
                            receipt.on_chain_id,
                        )
                        raise InvalidStateError(f"Market {market_id} changed state during initialization")
                    await self.locks.release_in(session, lease)
        except BaseException:
            await self.locks.release(lease)
            raise

        logger.info("Initialized market %s on chain as %s (tx %s)", market_id, receipt.on_chain_id, receipt.tx_hash)
        return InitializationResult(
            on_chain_id=receipt.on_chain_id,
            tx_hash=receipt.tx_hash,
            status=MarketStatus.ACTIVE,
            already_initialized=False,
        )

    async def _claim(self, market_id: str):
        """Take the lease and check the market is PENDING, atomically."""

        async def check(session: AsyncSession, lease: Lease):
            market = await MarketRepositoryImpl(session).get(market_id, for_update=True)
            if market is None:
                raise NotFoundError("Market", market_id)
            if market.status == MarketStatus.ACTIVE and market.on_chain_id:
                await self.locks.release_in(session, lease)
                logger.info("Market %s already initialized as %s", market_id, market.on_chain_id)
                return InitializationResult(
                    on_chain_id=market.on_chain_id,
                    tx_hash="",
                    status=market.status,
                    already_initialized=True,
                )
            if market.status != MarketStatus.PENDING:
                raise InvalidStateError(f"Cannot initialize market in {market.status.value} status")
            return market, lease

        return await self.locks.acquire(market_id, check)

    def _creation_params(self, market: Market) -> MarketCreationParams:
        return MarketCreationParams(
            title=market.title,
            description=market.description or "",
            end_time=calendar.timegm(market.end_date.utctimetuple()),
            min_stake=market.min_stake,
            max_stake=market.max_stake or 0,
            market_type=market_type_to_chain(market.market_type),
        )

    async def is_initializing(self, market_id: str) -> bool:
        return await self.locks.is_locked(market_id)

    # ==================== Reads ====================

    async def _live_data(self, market: Market) -> Optional[OnChainMarketData]:
        if market.status != MarketStatus.ACTIVE or not market.on_chain_id:
            return None
        try:
            return await self.gateway.get_market_data(market.on_chain_id)
        except (DomainError, ValueError) as e:
            logger.warning("Failed to fetch on-chain data for market %s: %s", market.id, e)
            return None

    async def get_market(self, market_id: str, include_on_chain: bool = True) -> MarketView:
        """Cached market, plus a live chain overlay for ACTIVE on-chain markets."""
        async with self.session_factory() as session:
            market = await MarketRepositoryImpl(session).get(market_id)
        if market is None:
            raise NotFoundError("Market", market_id)
        on_chain = await self._live_data(market) if include_on_chain else None
        return MarketView(market=market, on_chain_data=on_chain)

    async def list_by_group(
        self,
        group_id: str,
        status: Optional[MarketStatus] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        include_on_chain: bool = True,
    ) -> List[MarketView]:
        async with self.session_factory() as session:
            markets = await MarketRepositoryImpl(session).list_by_group(group_id, status, limit, offset)
        if not include_on_chain:
            return [MarketView(market=m) for m in markets]
        overlays = await asyncio.gather(*(self._live_data(m) for m in markets))
        return [MarketView(market=m, on_chain_data=d) for m, d in zip(markets, overlays)]

    # ==================== Voting ====================

    async def place_vote(
        self,
        market_id: str,
        user_id: str,
        prediction: VotePrediction,
        amount: float,
    ) -> Vote:
        """Record a stake and fold it into the cached pools atomically."""
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        now = self.clock()

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    markets = MarketRepositoryImpl(session)
                    votes = VoteRepositoryImpl(session)

                    market = await markets.get(market_id, for_update=True)
                    if market is None:
                        raise NotFoundError("Market", market_id)
                    role = await GroupRepositoryImpl(session).get_member_role(market.group_id, user_id)
                    if role is None:
                        raise ForbiddenError("Not a member of this group")
                    if market.status != MarketStatus.ACTIVE:
                        raise InvalidStateError("Market is not active")
                    if market.has_ended(now):
                        raise InvalidStateError("Market has ended")
                    if await votes.get(market_id, user_id):
                        raise DuplicateVoteError()
                    if amount < market.min_stake:
                        raise ValidationError(f"Minimum stake is {market.min_stake}")
                    if market.max_stake is not None and amount > market.max_stake:
                        raise ValidationError(f"Maximum stake is {market.max_stake}")

                    vote = await votes.create(
                        Vote(
                            id=generate_id(),
                            market_id=market_id,
                            user_id=user_id,
                            prediction=VotePrediction(prediction),
                            amount=amount,
                            created_at=now,
                        )
                    )
                    await markets.add_stake(market_id, vote.prediction, amount)
            except IntegrityError as e:
                # Unique (market_id, user_id) lost a race with a concurrent vote
                raise DuplicateVoteError() from e

        logger.info("Vote %s on market %s: %s %.4f", vote.id, market_id, vote.prediction.value, amount)
        return vote
