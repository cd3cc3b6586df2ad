"""Admin API routes."""
from fastapi import APIRouter

from app.api.admin import routes_relay

router = APIRouter()

router.include_router(routes_relay.router, prefix="/admin", tags=["admin"])
