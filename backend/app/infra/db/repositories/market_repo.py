"""Market and vote repository implementations.

Repositories never commit: the calling service owns the transaction so that
multi-row changes (pools and vote, settlement) land together or not at all.
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.common.types import utcnow
from app.domain.market.models import (
    Market,
    MarketOutcome,
    MarketStatus,
    Vote,
    VotePrediction,
    pool_percentages,
)
from app.infra.db.models.market import MarketModel, VoteModel


def _pool_values(yes_pool: float, no_pool: float) -> dict:
    """Pool columns with percentages derived from the pools."""
    yes_pct, no_pct = pool_percentages(yes_pool, no_pool)
    return {
        "yes_pool": yes_pool,
        "no_pool": no_pool,
        "total_volume": yes_pool + no_pool,
        "yes_percentage": yes_pct,
        "no_percentage": no_pct,
    }


class MarketRepository:
    """Market repository interface."""

    async def get(self, market_id: str, for_update: bool = False) -> Optional[Market]:
        """Get market by ID, optionally taking a row lock."""
        raise NotImplementedError

    async def create(self, market: Market) -> Market:
        """Create a market."""
        raise NotImplementedError

    async def list_by_group(
        self,
        group_id: str,
        status: Optional[MarketStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Market]:
        """List a group's markets, newest first."""
        raise NotImplementedError

    async def list_syncable_ids(self) -> List[str]:
        """IDs of ACTIVE markets that have an on-chain identifier."""
        raise NotImplementedError

    async def activate(self, market_id: str, on_chain_id: str) -> bool:
        """PENDING -> ACTIVE with the on-chain id; False if the market was not PENDING."""
        raise NotImplementedError

    async def apply_chain_state(
        self,
        market_id: str,
        on_chain_id: str,
        status: Optional[MarketStatus],
        outcome: Optional[MarketOutcome],
        yes_pool: float,
        no_pool: float,
        participant_count: int,
    ) -> bool:
        """Overwrite cached state with a chain snapshot in one statement.

        False if nothing matched, including any attempt to move a RESOLVED
        market to another status.
        """
        raise NotImplementedError

    async def add_stake(self, market_id: str, prediction: VotePrediction, amount: float) -> None:
        """Add a stake to one side and recompute percentages from the new pools."""
        raise NotImplementedError

    async def mark_resolved(
        self,
        market_id: str,
        outcome: MarketOutcome,
        resolved_by_id: str,
        resolved_at: datetime,
        note: Optional[str] = None,
    ) -> bool:
        """Move to RESOLVED; False if the market was already resolved."""
        raise NotImplementedError


class MarketRepositoryImpl(MarketRepository):
    """Market repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, market_id: str, for_update: bool = False) -> Optional[Market]:
        """Get market by ID, optionally taking a row lock."""
        stmt = (
            select(MarketModel)
            .where(MarketModel.id == market_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def create(self, market: Market) -> Market:
        """Create a market."""
        model = MarketModel.from_entity(market)
        self.session.add(model)
        await self.session.flush()
        return model.to_entity()

    async def list_by_group(
        self,
        group_id: str,
        status: Optional[MarketStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Market]:
        """List a group's markets, newest first."""
        stmt = select(MarketModel).where(MarketModel.group_id == group_id)
        if status is not None:
            stmt = stmt.where(MarketModel.status == status)
        stmt = stmt.order_by(MarketModel.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return [m.to_entity() for m in result.scalars().all()]

    async def list_syncable_ids(self) -> List[str]:
        """IDs of ACTIVE markets that have an on-chain identifier."""
        result = await self.session.execute(
            select(MarketModel.id)
            .where(MarketModel.status == MarketStatus.ACTIVE)
            .where(MarketModel.on_chain_id.is_not(None))
            .order_by(MarketModel.created_at)
        )
        return list(result.scalars().all())

    async def activate(self, market_id: str, on_chain_id: str) -> bool:
        """PENDING -> ACTIVE with the on-chain id; False if the market was not PENDING."""
        result = await self.session.execute(
            update(MarketModel)
            .where(MarketModel.id == market_id)
            .where(MarketModel.status == MarketStatus.PENDING)
            .where(MarketModel.on_chain_id.is_(None))
            .values(on_chain_id=on_chain_id, status=MarketStatus.ACTIVE, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def apply_chain_state(
        self,
        market_id: str,
        on_chain_id: str,
        status: Optional[MarketStatus],
        outcome: Optional[MarketOutcome],
        yes_pool: float,
        no_pool: float,
        participant_count: int,
    ) -> bool:
        """Overwrite cached state with a chain snapshot in one statement.

        ``status=None`` keeps the cached status. The outcome is only written
        together with RESOLVED. RESOLVED is terminal: a snapshot carrying any
        other status matches no row.
        """
        values = _pool_values(yes_pool, no_pool)
        values.update(participant_count=participant_count, updated_at=utcnow())
        stmt = (
            update(MarketModel)
            .where(MarketModel.id == market_id)
            .where(MarketModel.on_chain_id == on_chain_id)
        )
        if status is not None:
            values["status"] = status
            if status == MarketStatus.RESOLVED:
                if outcome is not None:
                    values["outcome"] = outcome
            else:
                stmt = stmt.where(MarketModel.status != MarketStatus.RESOLVED)
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_stake(self, market_id: str, prediction: VotePrediction, amount: float) -> None:
        """Add a stake to one side and recompute percentages from the new pools."""
        pool = MarketModel.yes_pool if prediction == VotePrediction.YES else MarketModel.no_pool
        await self.session.execute(
            update(MarketModel)
            .where(MarketModel.id == market_id)
            .values(
                {
                    pool: pool + amount,
                    MarketModel.total_volume: MarketModel.total_volume + amount,
                    MarketModel.participant_count: MarketModel.participant_count + 1,
                    MarketModel.updated_at: utcnow(),
                }
            )
            .execution_options(synchronize_session=False)
        )
        total = MarketModel.yes_pool + MarketModel.no_pool
        yes_pct = case((total > 0, MarketModel.yes_pool * 100.0 / total), else_=50.0)
        await self.session.execute(
            update(MarketModel)
            .where(MarketModel.id == market_id)
            .values(yes_percentage=yes_pct, no_percentage=100.0 - yes_pct)
            .execution_options(synchronize_session=False)
        )

    async def mark_resolved(
        self,
        market_id: str,
        outcome: MarketOutcome,
        resolved_by_id: str,
        resolved_at: datetime,
        note: Optional[str] = None,
    ) -> bool:
        """Move to RESOLVED; False if the market was already resolved."""
        result = await self.session.execute(
            update(MarketModel)
            .where(MarketModel.id == market_id)
            .where(MarketModel.status != MarketStatus.RESOLVED)
            .values(
                status=MarketStatus.RESOLVED,
                outcome=outcome,
                resolved_by_id=resolved_by_id,
                resolved_at=resolved_at,
                resolution_note=note,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class VoteRepository:
    """Vote repository interface."""

    async def get(self, market_id: str, user_id: str) -> Optional[Vote]:
        raise NotImplementedError

    async def list_by_market(self, market_id: str) -> List[Vote]:
        raise NotImplementedError

    async def create(self, vote: Vote) -> Vote:
        raise NotImplementedError

    async def set_rewards(self, rewards: dict[str, float]) -> int:
        """Record computed rewards for votes that have none yet."""
        raise NotImplementedError

    async def mark_claimed(self, vote_id: str) -> bool:
        """Flip has_claimed_reward; False if it was already set."""
        raise NotImplementedError


class VoteRepositoryImpl(VoteRepository):
    """Vote repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, market_id: str, user_id: str) -> Optional[Vote]:
        result = await self.session.execute(
            select(VoteModel)
            .where(VoteModel.market_id == market_id)
            .where(VoteModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def list_by_market(self, market_id: str) -> List[Vote]:
        result = await self.session.execute(
            select(VoteModel).where(VoteModel.market_id == market_id).order_by(VoteModel.created_at)
        )
        return [v.to_entity() for v in result.scalars().all()]

    async def create(self, vote: Vote) -> Vote:
        model = VoteModel.from_entity(vote)
        self.session.add(model)
        await self.session.flush()
        return model.to_entity()

    async def set_rewards(self, rewards: dict[str, float]) -> int:
        """Record computed rewards for votes that have none yet."""
        updated = 0
        for vote_id, reward in rewards.items():
            result = await self.session.execute(
                update(VoteModel)
                .where(VoteModel.id == vote_id)
                .where(VoteModel.reward_amount.is_(None))
                .values(reward_amount=reward)
                .execution_options(synchronize_session=False)
            )
            updated += result.rowcount
        return updated

    async def mark_claimed(self, vote_id: str) -> bool:
        """Flip has_claimed_reward; False if it was already set."""
        result = await self.session.execute(
            update(VoteModel)
            .where(VoteModel.id == vote_id)
            .where(VoteModel.has_claimed_reward.is_(False))
            .values(has_claimed_reward=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
