"""Reward service - applies quest rewards and the "on quest" marker to a user."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from squest.config import settings
from squest.core.errors import UserNotFound
from squest.models.user import User


class RewardService:
    @staticmethod
    def level_for_xp(xp: int) -> int:
        """Level 1 at 0 XP, one more level per XP_PER_LEVEL."""
        return 1 + max(0, xp) // settings.XP_PER_LEVEL

    @staticmethod
    async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFound()
        return user

    async def award(
        self, db: AsyncSession, user_id: uuid.UUID, xp: int, gold: int
    ) -> tuple[User, bool]:
        """Add XP and gold; returns the user and whether they leveled up."""
        user = await self._get_user(db, user_id)
        previous_level = user.level
        user.xp = max(0, user.xp + xp)
        user.gold = max(0, user.gold + gold)  # floor at 0
        user.level = self.level_for_xp(user.xp)
        await db.flush()
        return user, user.level > previous_level

    async def set_current_quest(
        self, db: AsyncSession, user_id: uuid.UUID, quest_name: str | None
    ) -> None:
        user = await self._get_user(db, user_id)
        user.current_quest = quest_name
        await db.flush()


reward_service = RewardService()
