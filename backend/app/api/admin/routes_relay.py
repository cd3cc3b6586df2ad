"""Relay wallet admin routes."""
import hmac
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel

from app.api.deps import get_ledger_gateway, get_relay_signer, get_settlement_service
from app.domain.common.errors import ForbiddenError
from app.domain.market.settlement import SettlementService
from app.infra.chain.ledger_gateway import LedgerGateway
from app.infra.chain.relay_signer import RelaySigner
from app.settings import settings

router = APIRouter()


class RelayWalletResponse(BaseModel):
    address: Optional[str]
    balance: float
    threshold: float
    healthy: bool


class RelayTransaction(BaseModel):
    hash: str
    version: Optional[str] = None
    sequence_number: Optional[str] = None
    function: Optional[str] = None
    success: Optional[bool] = None
    vm_status: Optional[str] = None
    timestamp: Optional[str] = None


class RelayTransactionsResponse(BaseModel):
    address: str
    transactions: List[RelayTransaction]


class PublishResolutionResponse(BaseModel):
    market_id: str
    tx_hash: str


def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
    """Static bearer token check against ADMIN_TOKEN."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No admin token provided")
    token = authorization[len("Bearer "):]
    if not settings.admin_token or not hmac.compare_digest(token, settings.admin_token):
        raise ForbiddenError("Invalid admin token")


@router.get("/relay-wallet", response_model=RelayWalletResponse)
async def get_relay_wallet(
    _: None = Depends(require_admin),
    signer: RelaySigner = Depends(get_relay_signer),
):
    """Relay wallet address and balance."""
    address = signer.get_address()
    balance = await signer.get_balance()
    return RelayWalletResponse(
        address=address,
        balance=balance,
        threshold=signer.min_balance,
        healthy=balance >= signer.min_balance,
    )


@router.post("/relay-wallet/monitor", response_model=RelayWalletResponse)
async def monitor_relay_wallet(
    _: None = Depends(require_admin),
    signer: RelaySigner = Depends(get_relay_signer),
):
    """Run the balance monitor now and return its report."""
    report = await signer.monitor_balance()
    return RelayWalletResponse(
        address=report.address,
        balance=report.balance,
        threshold=report.threshold,
        healthy=report.healthy,
    )


@router.get("/relay-wallet/transactions", response_model=RelayTransactionsResponse)
async def get_relay_wallet_transactions(
    limit: int = Query(25, ge=1, le=100),
    _: None = Depends(require_admin),
    signer: RelaySigner = Depends(get_relay_signer),
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    """Recent transactions sent by the relay wallet, newest first."""
    address = signer.get_address()
    transactions = await gateway.get_account_transactions(address, limit=limit)
    return RelayTransactionsResponse(
        address=address,
        transactions=[
            RelayTransaction(
                hash=tx.get("hash", ""),
                version=tx.get("version"),
                sequence_number=tx.get("sequence_number"),
                function=(tx.get("payload") or {}).get("function"),
                success=tx.get("success"),
                vm_status=tx.get("vm_status"),
                timestamp=tx.get("timestamp"),
            )
            for tx in transactions
        ],
    )


@router.post("/markets/{market_id}/publish-resolution", response_model=PublishResolutionResponse)
async def publish_resolution(
    market_id: str,
    _: None = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement_service),
):
    """Submit a locally resolved market's outcome to the contract."""
    tx_hash = await settlement.publish_resolution(market_id)
    return PublishResolutionResponse(market_id=market_id, tx_hash=tx_hash)
