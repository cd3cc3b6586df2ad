"""Market database models."""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.domain.common.types import utcnow
from app.domain.market.models import (
    InitializationLock,
    Market,
    MarketOutcome,
    MarketStatus,
    MarketType,
    Vote,
    VotePrediction,
)
from app.infra.db.base import Base


class MarketModel(Base):
    """Prediction market - local cache of the market and its pool metrics."""

    __tablename__ = "prediction_markets"

    id = Column(String, primary_key=True)
    on_chain_id = Column(String, unique=True, nullable=True)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    market_type = Column(SAEnum(MarketType, name="market_type"), nullable=False, default=MarketType.STANDARD)
    end_date = Column(DateTime, nullable=False)
    min_stake = Column(Float, nullable=False)
    max_stake = Column(Float, nullable=True)
    status = Column(SAEnum(MarketStatus, name="market_status"), nullable=False, default=MarketStatus.PENDING)
    outcome = Column(SAEnum(MarketOutcome, name="market_outcome"), nullable=True)

    # Cached pool metrics (percentages are recomputed from pools on every write)
    yes_pool = Column(Float, nullable=False, default=0.0)
    no_pool = Column(Float, nullable=False, default=0.0)
    total_volume = Column(Float, nullable=False, default=0.0)
    yes_percentage = Column(Float, nullable=False, default=50.0)
    no_percentage = Column(Float, nullable=False, default=50.0)
    participant_count = Column(Integer, nullable=False, default=0)

    resolved_by_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_note = Column(Text, nullable=True)
    created_by_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    votes = relationship("VoteModel", back_populates="market", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("min_stake > 0", name="ck_market_min_stake_positive"),
        CheckConstraint("max_stake IS NULL OR max_stake > 0", name="ck_market_max_stake_positive"),
        Index("ix_prediction_markets_group_id", "group_id"),
        Index("ix_prediction_markets_status", "status"),
    )

    def to_entity(self) -> Market:
        """Convert to domain entity."""
        return Market(
            id=self.id,
            on_chain_id=self.on_chain_id,
            group_id=self.group_id,
            title=self.title,
            description=self.description,
            image_url=self.image_url,
            market_type=MarketType(self.market_type),
            end_date=self.end_date,
            min_stake=self.min_stake,
            max_stake=self.max_stake,
            status=MarketStatus(self.status),
            outcome=MarketOutcome(self.outcome) if self.outcome else None,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            yes_pool=self.yes_pool,
            no_pool=self.no_pool,
            total_volume=self.total_volume,
            yes_percentage=self.yes_percentage,
            no_percentage=self.no_percentage,
            participant_count=self.participant_count,
            resolved_by_id=self.resolved_by_id,
            resolved_at=self.resolved_at,
            resolution_note=self.resolution_note,
        )

    @classmethod
    def from_entity(cls, entity: Market) -> "MarketModel":
        """Create from domain entity."""
        return cls(
            id=entity.id,
            on_chain_id=entity.on_chain_id,
            group_id=entity.group_id,
            title=entity.title,
            description=entity.description,
            image_url=entity.image_url,
            market_type=entity.market_type,
            end_date=entity.end_date,
            min_stake=entity.min_stake,
            max_stake=entity.max_stake,
            status=entity.status,
            outcome=entity.outcome,
            yes_pool=entity.yes_pool,
            no_pool=entity.no_pool,
            total_volume=entity.total_volume,
            yes_percentage=entity.yes_percentage,
            no_percentage=entity.no_percentage,
            participant_count=entity.participant_count,
            resolved_by_id=entity.resolved_by_id,
            resolved_at=entity.resolved_at,
            resolution_note=entity.resolution_note,
            created_by_id=entity.created_by_id,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class VoteModel(Base):
    """Vote model - one user's stake on one market."""

    __tablename__ = "votes"

    id = Column(String, primary_key=True)
    market_id = Column(String, ForeignKey("prediction_markets.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    prediction = Column(SAEnum(VotePrediction, name="vote_prediction"), nullable=False)
    amount = Column(Float, nullable=False)
    reward_amount = Column(Float, nullable=True)
    has_claimed_reward = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    market = relationship("MarketModel", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("market_id", "user_id", name="uq_vote_market_user"),
        CheckConstraint("amount > 0", name="ck_vote_amount_positive"),
        Index("ix_votes_user_id", "user_id"),
    )

    def to_entity(self) -> Vote:
        """Convert to domain entity."""
        return Vote(
            id=self.id,
            market_id=self.market_id,
            user_id=self.user_id,
            prediction=VotePrediction(self.prediction),
            amount=self.amount,
            created_at=self.created_at,
            reward_amount=self.reward_amount,
            has_claimed_reward=self.has_claimed_reward,
        )

    @classmethod
    def from_entity(cls, entity: Vote) -> "VoteModel":
        """Create from domain entity."""
        return cls(
            id=entity.id,
            market_id=entity.market_id,
            user_id=entity.user_id,
            prediction=entity.prediction,
            amount=entity.amount,
            reward_amount=entity.reward_amount,
            has_claimed_reward=entity.has_claimed_reward,
            created_at=entity.created_at,
        )


class InitializationLockModel(Base):
    """Lease row: at most one per market, reclaimable after expires_at."""

    __tablename__ = "initialization_locks"

    market_id = Column(String, primary_key=True)
    locked_by = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_initialization_locks_expires_at", "expires_at"),
    )

    def to_entity(self) -> InitializationLock:
        """Convert to domain entity."""
        return InitializationLock(
            market_id=self.market_id,
            locked_by=self.locked_by,
            expires_at=self.expires_at,
            created_at=self.created_at,
        )
