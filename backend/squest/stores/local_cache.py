"""On-device cache of the last synchronized friends snapshot."""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from squest.models.local_cache import CachedFriend, SyncState, LIST_FRIEND, LIST_REQUEST
from squest.schemas.friend import CachedSyncState, FriendSnapshot, FriendView

logger = logging.getLogger(__name__)

SYNC_STATE_ID = 1


class SqlLocalCache:
    """Snapshot rows plus a single sync-state row.

    The snapshot is only ever replaced as a whole, in one transaction together
    with the dirty bit it corresponds to.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def read_sync_state(self) -> CachedSyncState:
        async with self._sessions() as session:
            state = await session.get(SyncState, SYNC_STATE_ID)
            if state is None:
                return CachedSyncState()
            return CachedSyncState.model_validate(state)

    async def read_snapshot(self, user_id: uuid.UUID) -> FriendSnapshot | None:
        """Return the cached snapshot, or None if it was never written for this user."""
        async with self._sessions() as session:
            state = await session.get(SyncState, SYNC_STATE_ID)
            if state is None or state.current_user_id != user_id:
                return None
            result = await session.execute(
                select(CachedFriend)
                .where(CachedFriend.owner_user_id == user_id)
                .order_by(CachedFriend.position)
            )
            rows = result.scalars().all()

        return FriendSnapshot(
            friends=[FriendView.model_validate(r) for r in rows if r.list_type == LIST_FRIEND],
            requests=[FriendView.model_validate(r) for r in rows if r.list_type == LIST_REQUEST],
        )

    async def replace_snapshot(
        self, user_id: uuid.UUID, snapshot: FriendSnapshot, dirty_bit: uuid.UUID | None
    ) -> None:
        rows = [
            _to_row(user_id, LIST_FRIEND, i, view) for i, view in enumerate(snapshot.friends)
        ] + [
            _to_row(user_id, LIST_REQUEST, i, view) for i, view in enumerate(snapshot.requests)
        ]

        async with self._sessions() as session, session.begin():
            await session.execute(delete(CachedFriend))
            session.add_all(rows)

            state = await session.get(SyncState, SYNC_STATE_ID)
            if state is None:
                state = SyncState(id=SYNC_STATE_ID)
                session.add(state)
            state.current_user_id = user_id
            state.dirty_bit = dirty_bit
            state.synced_at = datetime.now(timezone.utc)

        logger.info(
            "Cached %d friends and %d requests for %s",
            len(snapshot.friends), len(snapshot.requests), user_id,
        )

    async def clear(self) -> None:
        """Drop everything, e.g. on sign-out."""
        async with self._sessions() as session, session.begin():
            await session.execute(delete(CachedFriend))
            await session.execute(delete(SyncState))


def _to_row(user_id: uuid.UUID, list_type: str, position: int, view: FriendView) -> CachedFriend:
    return CachedFriend(
        owner_user_id=user_id,
        list_type=list_type,
        position=position,
        **view.model_dump(),
    )
