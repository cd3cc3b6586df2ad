"""Prediction market API routes."""
from fastapi import APIRouter

from app.api.markets import routes_markets

router = APIRouter()

router.include_router(routes_markets.router, tags=["markets"])
