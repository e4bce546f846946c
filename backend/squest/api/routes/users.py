"""User endpoints - own profile and user search."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from squest.api.deps import get_current_user_id, get_friend_service
from squest.core.errors import UserNotFound
from squest.db.database import get_db
from squest.models.user import User
from squest.schemas.user import ProfileUpdate, UserProfile, UserSummary
from squest.services.friend_service import FriendGraphService

router = APIRouter()


async def _get_user_or_404(user_id: uuid.UUID, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound()
    return user


@router.get("/me", response_model=UserProfile)
async def get_me(
    user_id: uuid.UUID = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
):
    return await _get_user_or_404(user_id, db)


@router.patch("/me", response_model=UserProfile)
async def update_me(
    data: ProfileUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Update display name and avatar."""
    user = await _get_user_or_404(user_id, db)

    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(user, field, value)

    await db.flush()
    await db.refresh(user)
    return user


@router.get("/search", response_model=list[UserSummary])
async def search_users(
    q: str = Query(min_length=1, max_length=50),
    limit: int | None = Query(default=None, ge=1, le=50),
    user_id: uuid.UUID = Depends(get_current_user_id),
    friends: FriendGraphService = Depends(get_friend_service),
):
    return await friends.search_users(user_id, q, limit)
