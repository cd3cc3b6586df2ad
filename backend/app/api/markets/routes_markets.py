"""Prediction market API routes."""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.deps import (
    get_current_user,
    get_lifecycle_service,
    get_settlement_service,
    get_sync_service,
)
from app.domain.common.errors import ForbiddenError, LockContentionError
from app.domain.market.models import (
    CreateMarketInput,
    Market,
    MarketOutcome,
    MarketStatus,
    MarketType,
    MarketView,
    OnChainMarketData,
    User,
    Vote,
    VotePrediction,
)
from app.domain.market.services import MarketLifecycleService
from app.domain.market.settlement import SettlementService
from app.domain.market.sync import MarketSyncService

router = APIRouter()


# Request/Response Models
class CreateMarketRequest(BaseModel):
    """Create market request."""
    group_id: str
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    image_url: Optional[str] = None
    market_type: MarketType = MarketType.STANDARD
    end_date: datetime
    min_stake: float = Field(gt=0)
    max_stake: Optional[float] = Field(default=None, gt=0)


class VoteRequest(BaseModel):
    prediction: VotePrediction
    amount: float = Field(gt=0)


class ResolveRequest(BaseModel):
    outcome: MarketOutcome
    note: Optional[str] = None


class MarketResponse(BaseModel):
    """Cached market state."""
    id: str
    on_chain_id: Optional[str]
    group_id: str
    title: str
    description: Optional[str]
    image_url: Optional[str]
    market_type: MarketType
    end_date: datetime
    min_stake: float
    max_stake: Optional[float]
    status: MarketStatus
    outcome: Optional[MarketOutcome]
    yes_pool: float
    no_pool: float
    total_volume: float
    yes_percentage: float
    no_percentage: float
    participant_count: int
    created_by_id: str
    created_at: datetime
    resolved_at: Optional[datetime]
    resolution_note: Optional[str]


class OnChainDataResponse(BaseModel):
    """Live contract state; may differ from the cached values until the next sync."""
    status: int
    outcome: int
    yes_pool: float
    no_pool: float
    total_volume: float
    yes_percentage: float
    no_percentage: float
    participant_count: int


class MarketDetailResponse(BaseModel):
    market: MarketResponse
    on_chain_data: Optional[OnChainDataResponse] = None


class InitializeResponse(BaseModel):
    on_chain_id: str
    tx_hash: str
    status: MarketStatus
    already_initialized: bool


class VoteResponse(BaseModel):
    id: str
    market_id: str
    user_id: str
    prediction: VotePrediction
    amount: float
    reward_amount: Optional[float]
    has_claimed_reward: bool
    created_at: datetime


def _to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _market_response(market: Market) -> MarketResponse:
    return MarketResponse(
        id=market.id,
        on_chain_id=market.on_chain_id,
        group_id=market.group_id,
        title=market.title,
        description=market.description,
        image_url=market.image_url,
        market_type=market.market_type,
        end_date=market.end_date,
        min_stake=market.min_stake,
        max_stake=market.max_stake,
        status=market.status,
        outcome=market.outcome,
        yes_pool=market.yes_pool,
        no_pool=market.no_pool,
        total_volume=market.total_volume,
        yes_percentage=market.yes_percentage,
        no_percentage=market.no_percentage,
        participant_count=market.participant_count,
        created_by_id=market.created_by_id,
        created_at=market.created_at,
        resolved_at=market.resolved_at,
        resolution_note=market.resolution_note,
    )


def _on_chain_response(data: Optional[OnChainMarketData]) -> Optional[OnChainDataResponse]:
    if data is None:
        return None
    return OnChainDataResponse(
        status=data.status,
        outcome=data.outcome,
        yes_pool=data.yes_pool,
        no_pool=data.no_pool,
        total_volume=data.total_volume,
        yes_percentage=data.yes_percentage,
        no_percentage=data.no_percentage,
        participant_count=data.participant_count,
    )


def _detail_response(view: MarketView) -> MarketDetailResponse:
    return MarketDetailResponse(
        market=_market_response(view.market),
        on_chain_data=_on_chain_response(view.on_chain_data),
    )


def _vote_response(vote: Vote) -> VoteResponse:
    return VoteResponse(
        id=vote.id,
        market_id=vote.market_id,
        user_id=vote.user_id,
        prediction=vote.prediction,
        amount=vote.amount,
        reward_amount=vote.reward_amount,
        has_claimed_reward=vote.has_claimed_reward,
        created_at=vote.created_at,
    )


@router.post("/markets", response_model=MarketResponse, status_code=status.HTTP_201_CREATED)
async def create_market(
    request: CreateMarketRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: MarketLifecycleService = Depends(get_lifecycle_service),
):
    """Create a PENDING market. Nothing is written on chain until it is initialized."""
    market = await lifecycle.create_off_chain(
        CreateMarketInput(
            group_id=request.group_id,
            title=request.title,
            description=request.description,
            image_url=request.image_url,
            market_type=request.market_type,
            end_date=_to_utc_naive(request.end_date),
            min_stake=request.min_stake,
            max_stake=request.max_stake,
            created_by_id=current_user.id,
        )
    )
    return _market_response(market)


@router.get("/markets/{market_id}", response_model=MarketDetailResponse)
async def get_market(
    market_id: str,
    include_live: bool = Query(True),
    lifecycle: MarketLifecycleService = Depends(get_lifecycle_service),
):
    """Get a market, with live chain data for active on-chain markets."""
    view = await lifecycle.get_market(market_id, include_on_chain=include_live)
    return _detail_response(view)


@router.get("/groups/{group_id}/markets", response_model=List[MarketDetailResponse])
async def list_group_markets(
    group_id: str,
    status_filter: Optional[MarketStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    include_live: bool = Query(True),
    lifecycle: MarketLifecycleService = Depends(get_lifecycle_service),
):
    """List a group's markets, newest first."""
    views = await lifecycle.list_by_group(
        group_id,
        status=status_filter,
        limit=limit,
        offset=offset,
        include_on_chain=include_live,
    )
    return [_detail_response(v) for v in views]


@router.post("/markets/{market_id}/initialize", response_model=InitializeResponse)
async def initialize_market(
    market_id: str,
    current_user: User = Depends(get_current_user),
    lifecycle: MarketLifecycleService = Depends(get_lifecycle_service),
):
    """Commit a PENDING market on chain via the relay wallet. Idempotent."""
    view = await lifecycle.get_market(market_id, include_on_chain=False)
    if view.market.created_by_id != current_user.id:
        raise ForbiddenError("Only the market creator can initialize it")
    if await lifecycle.is_initializing(market_id):
        raise LockContentionError(market_id)
    result = await lifecycle.initialize(market_id)
    return InitializeResponse(
        on_chain_id=result.on_chain_id,
        tx_hash=result.tx_hash,
        status=result.status,
        already_initialized=result.already_initialized,
    )


@router.post("/markets/{market_id}/sync", response_model=MarketResponse)
async def sync_market(
    market_id: str,
    current_user: User = Depends(get_current_user),
    sync: MarketSyncService = Depends(get_sync_service),
):
    """Refresh the cached market from the chain."""
    market = await sync.sync_one(market_id)
    return _market_response(market)


@router.post("/markets/{market_id}/vote", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def place_vote(
    market_id: str,
    request: VoteRequest,
    current_user: User = Depends(get_current_user),
    lifecycle: MarketLifecycleService = Depends(get_lifecycle_service),
):
    vote = await lifecycle.place_vote(market_id, current_user.id, request.prediction, request.amount)
    return _vote_response(vote)


@router.post("/markets/{market_id}/resolve", response_model=MarketResponse)
async def resolve_market(
    market_id: str,
    request: ResolveRequest,
    current_user: User = Depends(get_current_user),
    settlement: SettlementService = Depends(get_settlement_service),
):
    """Declare the outcome (group admins and judges only) and compute rewards."""
    market = await settlement.resolve(market_id, current_user.id, request.outcome, request.note)
    return _market_response(market)


@router.post("/markets/{market_id}/claim", response_model=VoteResponse)
async def claim_reward(
    market_id: str,
    current_user: User = Depends(get_current_user),
    settlement: SettlementService = Depends(get_settlement_service),
):
    vote = await settlement.claim_reward(market_id, current_user.id)
    return _vote_response(vote)
