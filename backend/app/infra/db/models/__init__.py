"""Database models."""
from app.infra.db.models.user import UserModel, GroupModel, GroupMemberModel
from app.infra.db.models.market import (
    MarketModel,
    VoteModel,
    InitializationLockModel,
)

__all__ = [
    "UserModel",
    "GroupModel",
    "GroupMemberModel",
    "MarketModel",
    "VoteModel",
    "InitializationLockModel",
]
