"""Settlement: resolve a market, compute pari-mutuel rewards, pay out claims."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.common.errors import (
    AlreadyClaimedError,
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStateError,
    MarketNotEndedError,
    NotEligibleError,
    NotFoundError,
    NotInitializedError,
    NotResolvedError,
    WalletNotConfiguredError,
)
from app.domain.common.types import utcnow
from app.domain.market.codes import outcome_to_chain
from app.domain.market.models import (
    RESOLVER_ROLES,
    Market,
    MarketOutcome,
    MarketStatus,
    Vote,
    VotePrediction,
)
from app.infra.chain.relay_signer import RelaySigner
from app.infra.db.repositories.market_repo import MarketRepositoryImpl, VoteRepositoryImpl
from app.infra.db.repositories.user_repo import GroupRepositoryImpl, UserRepositoryImpl

logger = logging.getLogger(__name__)


@dataclass
class SettlementPlan:
    """Per-vote rewards for one outcome, plus who counts as a correct prediction."""
    outcome: MarketOutcome
    total_pool: float
    winning_pool: float
    rewards: dict[str, float] = field(default_factory=dict)
    winner_user_ids: set[str] = field(default_factory=set)
    refunded: bool = False


def compute_rewards(
    votes: Iterable[Vote],
    outcome: MarketOutcome,
    yes_pool: float,
    no_pool: float,
) -> SettlementPlan:
    """Pari-mutuel split of the whole pool among the winning side.

    Winners get ``amount / winning_pool * total_pool``, losers 0. INVALID
    refunds every stake. If nobody backed the winning side every stake is
    refunded as well and nobody is counted as correct.
    """
    votes = list(votes)
    total_pool = yes_pool + no_pool

    if outcome == MarketOutcome.INVALID:
        return SettlementPlan(
            outcome=outcome,
            total_pool=total_pool,
            winning_pool=0.0,
            rewards={v.id: v.amount for v in votes},
            refunded=True,
        )

    winning_side = VotePrediction.YES if outcome == MarketOutcome.YES else VotePrediction.NO
    winning_pool = yes_pool if winning_side == VotePrediction.YES else no_pool

    if winning_pool <= 0:
        return SettlementPlan(
            outcome=outcome,
            total_pool=total_pool,
            winning_pool=0.0,
            rewards={v.id: v.amount for v in votes},
            refunded=True,
        )

    plan = SettlementPlan(outcome=outcome, total_pool=total_pool, winning_pool=winning_pool)
    for vote in votes:
        if vote.prediction == winning_side:
            plan.rewards[vote.id] = vote.amount / winning_pool * total_pool
            plan.winner_user_ids.add(vote.user_id)
        else:
            plan.rewards[vote.id] = 0.0
    return plan


def staked_pools(votes: Iterable[Vote]) -> tuple[float, float]:
    """YES and NO totals of the recorded stakes."""
    yes_pool = no_pool = 0.0
    for vote in votes:
        if vote.prediction == VotePrediction.YES:
            yes_pool += vote.amount
        else:
            no_pool += vote.amount
    return yes_pool, no_pool


class SettlementService:
    """Resolution and reward claims. Each runs as one transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
        signer: Optional[RelaySigner] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.signer = signer

    async def resolve(
        self,
        market_id: str,
        resolver_id: str,
        outcome: MarketOutcome,
        note: Optional[str] = None,
    ) -> Market:
        """Declare the outcome, store every vote's reward and update voter stats."""
        outcome = MarketOutcome(outcome)
        now = self.clock()

        async with self.session_factory() as session:
            async with session.begin():
                markets = MarketRepositoryImpl(session)
                votes_repo = VoteRepositoryImpl(session)

                market = await markets.get(market_id, for_update=True)
                if market is None:
                    raise NotFoundError("Market", market_id)
                role = await GroupRepositoryImpl(session).get_member_role(market.group_id, resolver_id)
                if role not in RESOLVER_ROLES:
                    raise ForbiddenError("Only group admins or judges can resolve markets")
                if market.status == MarketStatus.RESOLVED:
                    raise AlreadyResolvedError()
                if market.status != MarketStatus.ACTIVE:
                    raise InvalidStateError(f"Cannot resolve market in {market.status.value} status")
                if not market.has_ended(now):
                    raise MarketNotEndedError()

                votes = await votes_repo.list_by_market(market_id)
                # Cached pools may hold a chain snapshot; payouts come from recorded stakes
                yes_pool, no_pool = staked_pools(votes)
                plan = compute_rewards(votes, outcome, yes_pool, no_pool)

                await votes_repo.set_rewards(plan.rewards)
                if not await markets.mark_resolved(market_id, outcome, resolver_id, now, note):
                    raise AlreadyResolvedError()
                await UserRepositoryImpl(session).increment_prediction_counts(
                    {v.user_id for v in votes},
                    plan.winner_user_ids if not plan.refunded else (),
                )
                resolved = await markets.get(market_id)

        logger.info(
            "Resolved market %s as %s: %d votes, pool %.4f, winning pool %.4f%s",
            market_id,
            outcome.value,
            len(votes),
            plan.total_pool,
            plan.winning_pool,
            " (refunded)" if plan.refunded else "",
        )
        return resolved

    async def claim_reward(self, market_id: str, user_id: str) -> Vote:
        """Mark the caller's reward claimed and credit their earnings, exactly once."""
        async with self.session_factory() as session:
            async with session.begin():
                markets = MarketRepositoryImpl(session)
                votes_repo = VoteRepositoryImpl(session)

                market = await markets.get(market_id)
                if market is None:
                    raise NotFoundError("Market", market_id)
                vote = await votes_repo.get(market_id, user_id)
                if vote is None:
                    raise NotFoundError("Vote", f"{market_id}/{user_id}")
                if market.status != MarketStatus.RESOLVED:
                    raise NotResolvedError()
                if vote.has_claimed_reward:
                    raise AlreadyClaimedError()
                if not vote.reward_amount or vote.reward_amount <= 0:
                    raise NotEligibleError()
                if not await votes_repo.mark_claimed(vote.id):
                    raise AlreadyClaimedError()
                await UserRepositoryImpl(session).add_earnings(user_id, vote.reward_amount)
                claimed = await votes_repo.get(market_id, user_id)

        logger.info("User %s claimed %.4f from market %s", user_id, claimed.reward_amount, market_id)
        return claimed

    async def publish_resolution(self, market_id: str) -> str:
        """Record a local resolution on the contract with the relay wallet as resolver.

        Payouts stay off-chain; this only moves the contract out of ACTIVE so
        its views agree with the cache. Returns the transaction hash.
        """
        if self.signer is None:
            raise WalletNotConfiguredError()
        async with self.session_factory() as session:
            market = await MarketRepositoryImpl(session).get(market_id)
        if market is None:
            raise NotFoundError("Market", market_id)
        if market.status != MarketStatus.RESOLVED:
            raise NotResolvedError()
        if not market.on_chain_id:
            raise NotInitializedError()

        tx_hash = await self.signer.submit_resolution(market.on_chain_id, outcome_to_chain(market.outcome))
        logger.info("Published resolution of market %s (%s) in tx %s", market_id, market.outcome.value, tx_hash)
        return tx_hash
