"""Per-user side table holding the friends-list dirty bit."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from squest.db.database import Base


class UserData(Base):
    __tablename__ = "user_data"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    # Opaque token, replaced on every change to the user's friends/requests
    friends_list_dirty_bit: Mapped[uuid.UUID | None] = mapped_column(nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
