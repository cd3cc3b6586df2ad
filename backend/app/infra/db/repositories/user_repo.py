"""User and group repository implementations."""
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.common.types import generate_id, utcnow
from app.domain.market.models import GroupRole, User
from app.infra.db.models.user import GroupMemberModel, GroupModel, UserModel


class UserRepositoryImpl:
    """User repository implementation."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user_id).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def get_by_wallet(self, wallet_address: str) -> Optional[User]:
        """Get user by wallet address (case-insensitive, stored lowercase)."""
        result = await self.session.execute(
            select(UserModel).where(UserModel.wallet_address == wallet_address.lower())
        )
        model = result.scalar_one_or_none()
        return model.to_entity() if model else None

    async def create(self, user: User) -> User:
        """Create a new user."""
        model = UserModel.from_entity(user)
        self.session.add(model)
        await self.session.flush()
        return model.to_entity()

    async def get_or_create_by_wallet(self, wallet_address: str) -> User:
        """Resolve a wallet to a user, creating the user on first sight.

        Commits; meant for request authentication, outside other units of work.
        """
        existing = await self.get_by_wallet(wallet_address)
        if existing:
            return existing
        now = utcnow()
        user = User(
            id=generate_id(),
            wallet_address=wallet_address.lower(),
            display_name=None,
            created_at=now,
            updated_at=now,
        )
        try:
            created = await self.create(user)
            await self.session.commit()
            return created
        except IntegrityError:
            # Concurrent first request for the same wallet
            await self.session.rollback()
            existing = await self.get_by_wallet(wallet_address)
            if existing is None:
                raise
            return existing

    async def increment_prediction_counts(self, voter_ids: Iterable[str], winner_ids: Iterable[str]) -> None:
        """total_predictions += 1 for every voter, correct_predictions += 1 for winners."""
        voter_ids = list(voter_ids)
        winner_ids = list(winner_ids)
        if voter_ids:
            await self.session.execute(
                update(UserModel)
                .where(UserModel.id.in_(voter_ids))
                .values(total_predictions=UserModel.total_predictions + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        if winner_ids:
            await self.session.execute(
                update(UserModel)
                .where(UserModel.id.in_(winner_ids))
                .values(correct_predictions=UserModel.correct_predictions + 1)
                .execution_options(synchronize_session=False)
            )

    async def add_earnings(self, user_id: str, amount: float) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(total_earnings=UserModel.total_earnings + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )


class GroupRepositoryImpl:
    """Group membership lookups. Group management itself lives in another service."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_member_role(self, group_id: str, user_id: str) -> Optional[GroupRole]:
        result = await self.session.execute(
            select(GroupMemberModel.role)
            .where(GroupMemberModel.group_id == group_id)
            .where(GroupMemberModel.user_id == user_id)
        )
        role = result.scalar_one_or_none()
        return GroupRole(role) if role is not None else None

    async def create_group(self, name: str, group_id: Optional[str] = None) -> str:
        model = GroupModel(id=group_id or generate_id(), name=name, created_at=utcnow())
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def add_member(self, group_id: str, user_id: str, role: GroupRole = GroupRole.MEMBER) -> None:
        self.session.add(
            GroupMemberModel(
                id=generate_id(),
                group_id=group_id,
                user_id=user_id,
                role=role,
                joined_at=utcnow(),
            )
        )
        await self.session.flush()
