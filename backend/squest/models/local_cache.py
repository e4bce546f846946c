"""Local cache models - the last synchronized friends snapshot and its dirty bit."""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from squest.db.local_cache import LocalBase

LIST_FRIEND = "friend"
LIST_REQUEST = "request"


class CachedFriend(LocalBase):
    __tablename__ = "cached_friends"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    list_type: Mapped[str] = mapped_column(String(10))  # "friend" or "request"
    position: Mapped[int] = mapped_column(Integer)

    # FriendView fields
    user_id: Mapped[uuid.UUID]
    name: Mapped[str] = mapped_column(String(50))
    username: Mapped[str] = mapped_column(String(51))
    last_active: Mapped[str] = mapped_column(String(50))
    on_quest: Mapped[str | None] = mapped_column(String(200), nullable=True)
    profile_initials: Mapped[str] = mapped_column(String(4))
    level: Mapped[int] = mapped_column(Integer, default=1)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20))
    direction: Mapped[str | None] = mapped_column(String(10), nullable=True)


class SyncState(LocalBase):
    """Single row: which user the cache belongs to and the dirty bit it matches."""
    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(primary_key=True, default=1)
    current_user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    dirty_bit: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
