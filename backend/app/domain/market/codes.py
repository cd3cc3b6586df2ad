"""Mapping between contract integer codes and local enums.

Every table is defined once per direction; the reverse tables are derived so
they cannot drift. ``WITH_YIELD`` has no contract code of its own and is
committed as ``STANDARD``.
"""
from typing import Optional

from app.domain.market.models import MarketOutcome, MarketStatus, MarketType, VotePrediction

OUTCOME_PENDING = 0

STATUS_FROM_CHAIN: dict[int, MarketStatus] = {
    0: MarketStatus.ACTIVE,
    1: MarketStatus.RESOLVED,
    2: MarketStatus.CANCELLED,
}
STATUS_TO_CHAIN: dict[MarketStatus, int] = {v: k for k, v in STATUS_FROM_CHAIN.items()}

OUTCOME_FROM_CHAIN: dict[int, Optional[MarketOutcome]] = {
    OUTCOME_PENDING: None,
    1: MarketOutcome.YES,
    2: MarketOutcome.NO,
    3: MarketOutcome.INVALID,
}
OUTCOME_TO_CHAIN: dict[MarketOutcome, int] = {
    v: k for k, v in OUTCOME_FROM_CHAIN.items() if v is not None
}

PREDICTION_TO_CHAIN: dict[VotePrediction, int] = {
    VotePrediction.YES: 1,
    VotePrediction.NO: 2,
}
PREDICTION_FROM_CHAIN: dict[int, VotePrediction] = {v: k for k, v in PREDICTION_TO_CHAIN.items()}

MARKET_TYPE_TO_CHAIN: dict[MarketType, int] = {
    MarketType.STANDARD: 0,
    MarketType.NO_LOSS: 1,
    MarketType.WITH_YIELD: 0,
}


class UnknownCodeError(ValueError):
    """Contract returned a code outside the known vocabulary."""


def status_from_chain(code: int) -> MarketStatus:
    try:
        return STATUS_FROM_CHAIN[int(code)]
    except KeyError:
        raise UnknownCodeError(f"Unknown on-chain market status code: {code}") from None


def outcome_from_chain(code: int) -> Optional[MarketOutcome]:
    try:
        return OUTCOME_FROM_CHAIN[int(code)]
    except KeyError:
        raise UnknownCodeError(f"Unknown on-chain outcome code: {code}") from None


def outcome_to_chain(outcome: MarketOutcome) -> int:
    return OUTCOME_TO_CHAIN[MarketOutcome(outcome)]


def prediction_to_chain(prediction: VotePrediction) -> int:
    return PREDICTION_TO_CHAIN[VotePrediction(prediction)]


def market_type_to_chain(market_type: MarketType) -> int:
    return MARKET_TYPE_TO_CHAIN[MarketType(market_type)]
