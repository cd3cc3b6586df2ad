"""Wallet API routes."""
from fastapi import APIRouter

from app.api.wallets import routes_wallets

router = APIRouter()

router.include_router(routes_wallets.router, tags=["wallets"])
