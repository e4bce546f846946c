"""Friendship model - one row per related pair, requester stored as user_id1."""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from squest.db.database import Base

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"


def make_pair_key(a: uuid.UUID, b: uuid.UUID) -> str:
    """Order-independent key for a pair of users."""
    low, high = sorted((str(a), str(b)))
    return f"{low}:{high}"


class Friendship(Base):
    __tablename__ = "friendships"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id1: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    user_id2: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_PENDING)  # "pending" or "accepted"

    # Same value for (A, B) and (B, A): at most one row per unordered pair
    pair_key: Mapped[str] = mapped_column(String(80), unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
