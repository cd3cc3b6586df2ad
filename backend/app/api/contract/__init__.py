"""On-chain contract API routes."""
from fastapi import APIRouter

from app.api.contract import routes_contract

router = APIRouter()

router.include_router(routes_contract.router, prefix="/contract", tags=["contract"])
