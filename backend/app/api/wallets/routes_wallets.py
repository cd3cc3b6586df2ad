"""Wallet balance routes."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_ledger_gateway
from app.domain.common.errors import ValidationError
from app.infra.chain.ledger_gateway import LedgerGateway, from_octas

router = APIRouter()


class WalletBalanceResponse(BaseModel):
    address: str
    balance: float
    octas: str
    formatted: str
    unit: str = "MOVE"


@router.get("/wallets/{address}/balance", response_model=WalletBalanceResponse)
async def get_wallet_balance(
    address: str,
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    """Native token balance of any address; 0 for accounts that do not exist yet."""
    if not address.startswith("0x"):
        raise ValidationError("Invalid wallet address format. Address must start with 0x")
    octas = await gateway.get_account_balance(address)
    balance = from_octas(octas)
    return WalletBalanceResponse(
        address=address,
        balance=balance,
        octas=str(octas),
        formatted=f"{balance:.4f} MOVE",
    )
