"""Initialization lock repository."""
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.market.models import InitializationLock
from app.infra.db.models.market import InitializationLockModel


class LockRepositoryImpl:
    """Lease rows keyed by market id. The primary key is the mutual exclusion."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, lock: InitializationLock) -> None:
        """Insert a lease row; raises IntegrityError if the market already has one."""
        await self.session.execute(
            insert(InitializationLockModel).values(
                market_id=lock.market_id,
                locked_by=lock.locked_by,
                expires_at=lock.expires_at,
                created_at=lock.created_at,
            )
        )

    async def get(self, market_id: str) -> Optional[InitializationLock]:
        result = await self.session.execute(
            select(InitializationLockModel).where(InitializationLockModel.market_id == market_id)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def delete(self, market_id: str, locked_by: Optional[str] = None) -> int:
        stmt = delete(InitializationLockModel).where(InitializationLockModel.market_id == market_id)
        if locked_by is not None:
            stmt = stmt.where(InitializationLockModel.locked_by == locked_by)
        result = await self.session.execute(stmt)
        return result.rowcount

    async def delete_expired(self, now: datetime, market_id: Optional[str] = None) -> int:
        """Delete leases that expired before ``now`` (for one market, or all)."""
        stmt = delete(InitializationLockModel).where(InitializationLockModel.expires_at < now)
        if market_id is not None:
            stmt = stmt.where(InitializationLockModel.market_id == market_id)
        result = await self.session.execute(stmt)
        return result.rowcount
