"""Direct contract reads and unsigned payloads for wallet-side signing.

Amounts in requests and responses are display units; payloads carry octas.
"""
import calendar
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.api.deps import get_current_user, get_ledger_gateway
from app.domain.common.errors import NotFoundError, ValidationError
from app.domain.market.codes import (
    MARKET_TYPE_TO_CHAIN,
    OUTCOME_TO_CHAIN,
    PREDICTION_FROM_CHAIN,
    PREDICTION_TO_CHAIN,
    STATUS_TO_CHAIN,
    market_type_to_chain,
    outcome_to_chain,
    prediction_to_chain,
)
from app.domain.market.models import MarketOutcome, MarketType, User, VotePrediction
from app.infra.chain.ledger_gateway import LedgerCallError, LedgerGateway, from_octas, to_octas

router = APIRouter()

ON_CHAIN_ID_PATTERN = r"^\d+$"


# Request/Response Models
class ContractInfoResponse(BaseModel):
    contract_address: str
    market_count: int
    constants: dict[str, dict[str, int]]


class OnChainMarketResponse(BaseModel):
    market_id: str
    status: int
    outcome: int
    yes_pool: float
    no_pool: float
    total_pool: float
    yes_percentage: float
    no_percentage: float
    participant_count: int


class OnChainVoteResponse(BaseModel):
    market_id: str
    voter_address: str
    prediction: int
    prediction_label: Optional[VotePrediction]
    amount: float
    potential_reward: float


class BuildCreateMarketRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    end_time: datetime
    min_stake: float = Field(default=0.1, gt=0)
    max_stake: float = Field(default=0.0, ge=0)  # 0 = no limit
    resolver: str = Field(pattern=r"^0x[0-9a-fA-F]+$")
    market_type: MarketType = MarketType.STANDARD


class BuildPlaceVoteRequest(BaseModel):
    market_id: str = Field(pattern=ON_CHAIN_ID_PATTERN)
    prediction: VotePrediction
    amount: float = Field(gt=0)


class BuildResolveRequest(BaseModel):
    market_id: str = Field(pattern=ON_CHAIN_ID_PATTERN)
    outcome: MarketOutcome


class BuildClaimRequest(BaseModel):
    market_id: str = Field(pattern=ON_CHAIN_ID_PATTERN)


class PayloadResponse(BaseModel):
    payload: dict
    contract_address: str


def _check_on_chain_id(market_id: str) -> None:
    if not market_id.isdigit():
        raise ValidationError(f"Invalid on-chain market id: {market_id}")


def _payload_response(gateway: LedgerGateway, payload: dict) -> PayloadResponse:
    return PayloadResponse(payload=payload, contract_address=gateway.contract_address)


# ==================== Reads ====================

@router.get("/info", response_model=ContractInfoResponse)
async def get_contract_info(gateway: LedgerGateway = Depends(get_ledger_gateway)):
    """Contract address, market count and the numeric codes it speaks."""
    return ContractInfoResponse(
        contract_address=gateway.contract_address,
        market_count=await gateway.get_market_count(),
        constants={
            "market_type": {t.value: code for t, code in MARKET_TYPE_TO_CHAIN.items() if t != MarketType.WITH_YIELD},
            "prediction": {p.value: code for p, code in PREDICTION_TO_CHAIN.items()},
            "outcome": {o.value: code for o, code in OUTCOME_TO_CHAIN.items()},
            "status": {s.value: code for s, code in STATUS_TO_CHAIN.items()},
        },
    )


@router.get("/markets/{market_id}", response_model=OnChainMarketResponse)
async def get_on_chain_market(market_id: str, gateway: LedgerGateway = Depends(get_ledger_gateway)):
    """Live contract state of an on-chain market id."""
    _check_on_chain_id(market_id)
    try:
        data = await gateway.get_market_data(market_id)
    except LedgerCallError as e:
        raise NotFoundError("On-chain market", market_id) from e
    return OnChainMarketResponse(
        market_id=market_id,
        status=data.status,
        outcome=data.outcome,
        yes_pool=data.yes_pool,
        no_pool=data.no_pool,
        total_pool=data.yes_pool + data.no_pool,
        yes_percentage=data.yes_percentage,
        no_percentage=data.no_percentage,
        participant_count=data.participant_count,
    )


@router.get("/markets/{market_id}/votes/{voter_address}", response_model=OnChainVoteResponse)
async def get_on_chain_vote(
    market_id: str,
    voter_address: str,
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    """A voter's on-chain stake and what it would pay out now."""
    _check_on_chain_id(market_id)
    try:
        prediction = await gateway.get_vote_prediction(market_id, voter_address)
        amount = await gateway.get_vote_amount(market_id, voter_address)
    except LedgerCallError as e:
        raise NotFoundError("On-chain vote", f"{market_id}/{voter_address}") from e
    try:
        reward = await gateway.calculate_reward(market_id, voter_address)
    except LedgerCallError:
        # The contract aborts reward views for unresolved markets
        reward = 0
    return OnChainVoteResponse(
        market_id=market_id,
        voter_address=voter_address,
        prediction=prediction,
        prediction_label=PREDICTION_FROM_CHAIN.get(prediction),
        amount=from_octas(amount),
        potential_reward=from_octas(reward),
    )


# ==================== Payload builders ====================

@router.post("/build/create-market", response_model=PayloadResponse)
async def build_create_market(
    request: BuildCreateMarketRequest,
    _: User = Depends(get_current_user),
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    if request.max_stake and request.max_stake < request.min_stake:
        raise ValidationError("Maximum stake must be greater than or equal to minimum stake")
    payload = gateway.build_create_market_payload(
        title=request.title,
        description=request.description,
        end_time=calendar.timegm(request.end_time.utctimetuple()),
        min_stake_octas=to_octas(request.min_stake),
        max_stake_octas=to_octas(request.max_stake),
        resolver=request.resolver,
        market_type=market_type_to_chain(request.market_type),
    )
    return _payload_response(gateway, payload)


@router.post("/build/place-vote", response_model=PayloadResponse)
async def build_place_vote(
    request: BuildPlaceVoteRequest,
    _: User = Depends(get_current_user),
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    payload = gateway.build_place_vote_payload(
        request.market_id, prediction_to_chain(request.prediction), to_octas(request.amount)
    )
    return _payload_response(gateway, payload)


@router.post("/build/resolve", response_model=PayloadResponse)
async def build_resolve(
    request: BuildResolveRequest,
    _: User = Depends(get_current_user),
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    payload = gateway.build_resolve_payload(request.market_id, outcome_to_chain(request.outcome))
    return _payload_response(gateway, payload)


@router.post("/build/claim", response_model=PayloadResponse)
async def build_claim(
    request: BuildClaimRequest,
    _: User = Depends(get_current_user),
    gateway: LedgerGateway = Depends(get_ledger_gateway),
):
    return _payload_response(gateway, gateway.build_claim_reward_payload(request.market_id))
