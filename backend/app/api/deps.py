"""API dependencies."""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.market.models import User
from app.domain.market.services import MarketLifecycleService
from app.domain.market.settlement import SettlementService
from app.domain.market.sync import MarketSyncService
from app.infra.chain.ledger_gateway import LedgerGateway
from app.infra.chain.relay_signer import RelaySigner
from app.infra.db.repositories.user_repo import UserRepositoryImpl
from app.infra.db.session import get_db
from app.services.container import ServiceContainer, get_container


def get_lifecycle_service(container: ServiceContainer = Depends(get_container)) -> MarketLifecycleService:
    return container.lifecycle


def get_sync_service(container: ServiceContainer = Depends(get_container)) -> MarketSyncService:
    return container.sync


def get_settlement_service(container: ServiceContainer = Depends(get_container)) -> SettlementService:
    return container.settlement


def get_relay_signer(container: ServiceContainer = Depends(get_container)) -> RelaySigner:
    return container.signer


def get_ledger_gateway(container: ServiceContainer = Depends(get_container)) -> LedgerGateway:
    return container.gateway


async def get_current_user(
    x_wallet_address: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the verified wallet address (set by the identity proxy) to a user."""
    if not x_wallet_address:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing wallet identity",
        )
    return await UserRepositoryImpl(db).get_or_create_by_wallet(x_wallet_address.strip())
