"""User model - profile rows owned by the auth provider, plus quest progress."""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, Boolean, DateTime, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from squest.db.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(50))
    displayed_name: Mapped[str] = mapped_column(String(50), default="")
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Presence
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    last_online: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Progress
    level: Mapped[int] = mapped_column(Integer, default=1)
    xp: Mapped[int] = mapped_column(Integer, default=0)
    gold: Mapped[int] = mapped_column(Integer, default=0)
    current_quest: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# Usernames are unique regardless of case
Index("uq_users_username_lower", func.lower(User.username), unique=True)
