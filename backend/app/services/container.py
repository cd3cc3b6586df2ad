"""Process-wide wiring of the chain clients and market services."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.market.initialization import InitializationLockManager
from app.domain.market.services import MarketLifecycleService
from app.domain.market.settlement import SettlementService
from app.domain.market.sync import MarketSyncService
from app.infra.chain.ledger_gateway import LedgerGateway
from app.infra.chain.relay_signer import RelaySigner, RelayWallet
from app.infra.db.session import get_session_factory
from app.settings import Settings, settings as app_settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    session_factory: async_sessionmaker[AsyncSession]
    gateway: LedgerGateway
    wallet: RelayWallet
    signer: RelaySigner
    locks: InitializationLockManager
    lifecycle: MarketLifecycleService
    sync: MarketSyncService
    settlement: SettlementService

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        gateway: Optional[LedgerGateway] = None,
        wallet: Optional[RelayWallet] = None,
        signer: Optional[RelaySigner] = None,
    ) -> "ServiceContainer":
        gateway = gateway or LedgerGateway.from_settings(settings)
        wallet = wallet or RelayWallet.from_settings(settings)
        signer = signer or RelaySigner.from_settings(wallet, gateway, settings)
        locks = InitializationLockManager(session_factory, ttl_seconds=settings.initialization_lock_ttl_seconds)
        return cls(
            session_factory=session_factory,
            gateway=gateway,
            wallet=wallet,
            signer=signer,
            locks=locks,
            lifecycle=MarketLifecycleService(
                session_factory,
                gateway,
                signer,
                locks,
                initialize_timeout=settings.initialize_timeout_seconds,
            ),
            sync=MarketSyncService(session_factory, gateway),
            settlement=SettlementService(session_factory, signer=signer),
        )

    async def aclose(self) -> None:
        await self.gateway.aclose()


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Build the container on first use; the relay wallet is loaded exactly once."""
    global _container
    if _container is None:
        _container = ServiceContainer.build(get_session_factory(), app_settings)
        logger.info("Service container ready (contract %s)", app_settings.movement_contract_address)
    return _container


async def close_container() -> None:
    global _container
    if _container is not None:
        await _container.aclose()
        _container = None
