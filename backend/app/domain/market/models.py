"""Market domain models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MarketType(str, Enum):
    """Market type enum."""
    STANDARD = "STANDARD"
    NO_LOSS = "NO_LOSS"
    WITH_YIELD = "WITH_YIELD"  # Reserved; committed on chain as STANDARD


class MarketStatus(str, Enum):
    """Market lifecycle status."""
    PENDING = "PENDING"      # Off-chain only
    ACTIVE = "ACTIVE"        # Committed on chain, accepting votes
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


class MarketOutcome(str, Enum):
    """Final market outcome."""
    YES = "YES"
    NO = "NO"
    INVALID = "INVALID"


class VotePrediction(str, Enum):
    """Side a voter backs."""
    YES = "YES"
    NO = "NO"


class GroupRole(str, Enum):
    """Group member role."""
    ADMIN = "ADMIN"
    JUDGE = "JUDGE"
    MEMBER = "MEMBER"


RESOLVER_ROLES = frozenset({GroupRole.ADMIN, GroupRole.JUDGE})


def pool_percentages(yes_pool: float, no_pool: float) -> tuple[float, float]:
    """Yes/No share of the pool in percent; 50/50 when nothing is staked."""
    total = yes_pool + no_pool
    if total <= 0:
        return 50.0, 50.0
    yes_pct = yes_pool / total * 100
    return yes_pct, 100 - yes_pct


@dataclass
class Market:
    """Prediction market domain model."""
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
    created_by_id: str
    created_at: datetime
    updated_at: datetime
    yes_pool: float = 0.0
    no_pool: float = 0.0
    total_volume: float = 0.0
    yes_percentage: float = 50.0
    no_percentage: float = 50.0
    participant_count: int = 0
    resolved_by_id: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None

    @property
    def is_on_chain(self) -> bool:
        return self.on_chain_id is not None

    def has_ended(self, now: datetime) -> bool:
        return now >= self.end_date


@dataclass
class Vote:
    """A single voter's stake on a market."""
    id: str
    market_id: str
    user_id: str
    prediction: VotePrediction
    amount: float
    created_at: datetime
    reward_amount: Optional[float] = None
    has_claimed_reward: bool = False


@dataclass
class User:
    """User with lifetime prediction aggregates."""
    id: str
    wallet_address: str
    display_name: Optional[str]
    created_at: datetime
    updated_at: datetime
    total_predictions: int = 0
    correct_predictions: int = 0
    total_earnings: float = 0.0

    @property
    def win_rate(self) -> float:
        if not self.total_predictions:
            return 0.0
        return self.correct_predictions / self.total_predictions * 100


@dataclass
class InitializationLock:
    """Lease guarding on-chain commitment of one market."""
    market_id: str
    locked_by: str
    expires_at: datetime
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


@dataclass
class OnChainMarketData:
    """Live market state read from the contract, in display units."""
    status: int
    outcome: int
    yes_pool: float
    no_pool: float
    total_volume: float
    yes_percentage: float
    no_percentage: float
    participant_count: int


@dataclass
class MarketView:
    """Cached market plus an optional live overlay (never written back)."""
    market: Market
    on_chain_data: Optional[OnChainMarketData] = None


@dataclass
class CreateMarketInput:
    """Input for off-chain market creation."""
    group_id: str
    title: str
    market_type: MarketType
    end_date: datetime
    min_stake: float
    created_by_id: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    max_stake: Optional[float] = None


@dataclass
class InitializationResult:
    """Outcome of an initialize call."""
    on_chain_id: str
    tx_hash: str
    status: MarketStatus
    already_initialized: bool


@dataclass
class SyncReport:
    """Summary of a batch sync run."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)
