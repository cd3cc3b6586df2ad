"""User and group database models."""
from sqlalchemy import Column, DateTime, Enum as SAEnum, Float, ForeignKey, Index, Integer, String, UniqueConstraint

from app.domain.common.types import utcnow
from app.domain.market.models import GroupRole, User
from app.infra.db.base import Base


class UserModel(Base):
    """User database model. Identity is the verified wallet address."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    wallet_address = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=True)
    total_predictions = Column(Integer, default=0, nullable=False)
    correct_predictions = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_entity(self) -> User:
        """Convert to domain entity."""
        return User(
            id=self.id,
            wallet_address=self.wallet_address,
            display_name=self.display_name,
            total_predictions=self.total_predictions,
            correct_predictions=self.correct_predictions,
            total_earnings=self.total_earnings,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_entity(cls, entity: User) -> "UserModel":
        """Create from domain entity."""
        return cls(
            id=entity.id,
            wallet_address=entity.wallet_address,
            display_name=entity.display_name,
            total_predictions=entity.total_predictions,
            correct_predictions=entity.correct_predictions,
            total_earnings=entity.total_earnings,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class GroupModel(Base):
    """Group model. Group management lives elsewhere; markets only reference it."""

    __tablename__ = "groups"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class GroupMemberModel(Base):
    """Group membership with role (ADMIN and JUDGE may resolve markets)."""

    __tablename__ = "group_members"

    id = Column(String, primary_key=True)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(SAEnum(GroupRole, name="group_role"), nullable=False, default=GroupRole.MEMBER)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        Index("ix_group_members_user_id", "user_id"),
    )
