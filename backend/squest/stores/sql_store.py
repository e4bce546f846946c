"""Remote relationship store backed directly by the relational database."""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from squest.core.errors import DuplicateRelationship, TransportError
from squest.models.friendship import Friendship, STATUS_ACCEPTED, STATUS_PENDING, make_pair_key
from squest.models.user import User
from squest.models.user_data import UserData
from squest.schemas.friend import FriendRecord, Relationship
from squest.schemas.user import UserSummary

logger = logging.getLogger(__name__)


class SqlRelationshipStore:
    """Every call uses its own session, so independent reads can run concurrently."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Relationship store query failed: %s", exc)
            raise TransportError() from exc

    # ------------------------------------------------------------------
    # Relationship queries
    # ------------------------------------------------------------------

    async def _friend_rows(self, user_id, status, my_side, other_side) -> list[FriendRecord]:
        stmt = (
            select(Friendship, User)
            .join(User, User.id == other_side)
            .where(my_side == user_id, Friendship.status == status)
            .order_by(Friendship.created_at, Friendship.id)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_record(friendship, user) for friendship, user in result.all()]

    async def accepted_as_user1(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._friend_rows(user_id, STATUS_ACCEPTED, Friendship.user_id1, Friendship.user_id2)

    async def accepted_as_user2(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._friend_rows(user_id, STATUS_ACCEPTED, Friendship.user_id2, Friendship.user_id1)

    async def pending_as_recipient(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._friend_rows(user_id, STATUS_PENDING, Friendship.user_id2, Friendship.user_id1)

    async def pending_as_requester(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._friend_rows(user_id, STATUS_PENDING, Friendship.user_id1, Friendship.user_id2)

    async def find_relationship(self, a: uuid.UUID, b: uuid.UUID) -> Relationship | None:
        async with self._session() as session:
            result = await session.execute(
                select(Friendship).where(Friendship.pair_key == make_pair_key(a, b))
            )
            row = result.scalar_one_or_none()
            return Relationship.model_validate(row) if row else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def insert_request(self, from_user_id: uuid.UUID, to_user_id: uuid.UUID) -> Relationship:
        async with self._session() as session:
            row = Friendship(
                user_id1=from_user_id,
                user_id2=to_user_id,
                status=STATUS_PENDING,
                pair_key=make_pair_key(from_user_id, to_user_id),
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateRelationship() from exc
            return Relationship(user_id1=from_user_id, user_id2=to_user_id, status=STATUS_PENDING)

    async def accept_relationship(self, a: uuid.UUID, b: uuid.UUID) -> int:
        async with self._session() as session:
            result = await session.execute(
                update(Friendship)
                .where(Friendship.pair_key == make_pair_key(a, b), Friendship.status == STATUS_PENDING)
                .values(status=STATUS_ACCEPTED)
            )
            await session.commit()
            return result.rowcount

    async def delete_relationship(self, a: uuid.UUID, b: uuid.UUID, status: str) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(Friendship)
                .where(Friendship.pair_key == make_pair_key(a, b), Friendship.status == status)
            )
            await session.commit()
            return result.rowcount

    async def bump_dirty_bits(self, a: uuid.UUID, b: uuid.UUID) -> None:
        async with self._session() as session:
            for user_id in {a, b}:
                data = await session.get(UserData, user_id)
                if data is None:
                    session.add(UserData(user_id=user_id, friends_list_dirty_bit=uuid.uuid4()))
                else:
                    data.friends_list_dirty_bit = uuid.uuid4()
            await session.commit()

    async def fetch_dirty_bit(self, user_id: uuid.UUID) -> uuid.UUID | None:
        async with self._session() as session:
            result = await session.execute(
                select(UserData.friends_list_dirty_bit).where(UserData.user_id == user_id)
            )
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def search_users(
        self, query: str, limit: int, exclude_user_id: uuid.UUID | None = None
    ) -> list[UserSummary]:
        stmt = (
            select(User)
            .where(func.lower(User.username).contains(query.lower(), autoescape=True))
            .order_by(User.username)
            .limit(limit)
        )
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [UserSummary.model_validate(u) for u in result.scalars().all()]

    async def find_user_id(self, username: str) -> uuid.UUID | None:
        async with self._session() as session:
            result = await session.execute(
                select(User.id).where(func.lower(User.username) == username.lower())
            )
            return result.scalar_one_or_none()


def _to_record(friendship: Friendship, user: User) -> FriendRecord:
    return FriendRecord(
        user_id1=friendship.user_id1,
        user_id2=friendship.user_id2,
        status=friendship.status,
        username=user.username,
        displayed_name=user.displayed_name or "",
        last_online=user.last_online.isoformat() if user.last_online else None,
        is_online=user.is_online,
        level=user.level,
        avatar_url=user.avatar_url,
        current_quest=user.current_quest,
    )
