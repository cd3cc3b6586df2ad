"""Per-market initialization lease.

A lease is a row in ``initialization_locks`` keyed by market id, so at most one
holder exists across every process sharing the database. Leases expire and
can be reclaimed, so a crashed holder never blocks a market forever.
"""
import asyncio
import logging
import os
import socket
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, TypeVar
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.common.errors import LockContentionError
from app.domain.common.types import utcnow
from app.domain.market.models import InitializationLock
from app.infra.db.repositories.lock_repo import LockRepositoryImpl

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


@dataclass
class Lease:
    market_id: str
    holder: str
    expires_at: datetime


class _LeaseHeld(Exception):
    pass


class InitializationLockManager:
    """Acquire, release and sweep initialization leases."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock

    async def acquire(
        self,
        market_id: str,
        check: Callable[[AsyncSession, Lease], Awaitable[T]],
    ) -> T:
        """Take the lease and run ``check`` in the same transaction.

        The lease row is inserted first, so the insert doubles as the write
        lock that serializes concurrent callers. If ``check`` raises, the
        transaction rolls back and the lease disappears with it. An expired
        lease held by someone else is reclaimed once; a live one raises
        LockContentionError. Cancellation drops whatever this attempt
        may have committed.
        """
        for attempt in (1, 2):
            now = self.clock()
            lease = Lease(market_id=market_id, holder=_holder_id(), expires_at=now + self.ttl)
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        try:
                            await LockRepositoryImpl(session).insert(
                                InitializationLock(
                                    market_id=market_id,
                                    locked_by=lease.holder,
                                    expires_at=lease.expires_at,
                                    created_at=now,
                                )
                            )
                        except IntegrityError as e:
                            raise _LeaseHeld() from e
                        return await check(session, lease)
            except _LeaseHeld:
                if attempt == 1 and await self._reclaim_expired(market_id):
                    continue
                raise LockContentionError(market_id)
            except asyncio.CancelledError:
                # The lease may have committed before the cancellation landed
                await asyncio.shield(self.release(lease))
                raise
        raise LockContentionError(market_id)

    async def _reclaim_expired(self, market_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                deleted = await LockRepositoryImpl(session).delete_expired(self.clock(), market_id)
        if deleted:
            logger.warning("Reclaimed expired initialization lock for market %s", market_id)
        return bool(deleted)

    async def release_in(self, session: AsyncSession, lease: Lease) -> None:
        """Drop the lease inside the caller's transaction."""
        await LockRepositoryImpl(session).delete(lease.market_id, lease.holder)

    async def release(self, lease: Lease) -> None:
        """Best-effort release in a fresh transaction. Safe to call twice."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await LockRepositoryImpl(session).delete(lease.market_id, lease.holder)
        except Exception:
            # The lease expires on its own; a failed release must not mask the caller's error
            logger.exception("Failed to release initialization lock for market %s", lease.market_id)

    async def is_locked(self, market_id: str) -> bool:
        """True while an unexpired lease exists."""
        async with self.session_factory() as session:
            lock = await LockRepositoryImpl(session).get(market_id)
        return lock is not None and not lock.is_expired(self.clock())

    async def sweep_expired(self) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                deleted = await LockRepositoryImpl(session).delete_expired(self.clock())
        if deleted:
            logger.info("Swept %d expired initialization locks", deleted)
        return deleted
