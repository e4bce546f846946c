"""Friend-graph Pydantic schemas: decoded remote rows, display views, snapshots."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Relationship(BaseModel):
    """A relationship row; user_id1 is the requester."""
    user_id1: uuid.UUID
    user_id2: uuid.UUID
    status: str  # "pending" or "accepted"

    model_config = {"from_attributes": True}


class FriendRecord(BaseModel):
    """One row returned by the accepted/pending relationship queries.

    The profile fields describe the *other* user of the pair.
    """
    user_id1: uuid.UUID | None = None
    user_id2: uuid.UUID | None = None
    status: str
    username: str
    displayed_name: str = ""
    last_online: str | None = None  # ISO-8601; left raw so a bad value shows as "Unknown"
    is_online: bool = False
    level: int = 1
    avatar_url: str | None = None
    current_quest: str | None = None

    def other_user_id(self, user_id: uuid.UUID) -> uuid.UUID | None:
        if self.user_id1 == user_id:
            return self.user_id2
        return self.user_id1


class FriendView(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: uuid.UUID
    name: str
    username: str  # "@handle"
    last_active: str
    on_quest: str | None = None
    profile_initials: str
    level: int = 1
    avatar_url: str | None = None
    status: str
    direction: str | None = None  # "incoming" / "outgoing" for requests


class FriendSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    friends: list[FriendView] = Field(default_factory=list)
    requests: list[FriendView] = Field(default_factory=list)
    is_stale: bool = False  # True when the remote could not be read

    def contains_username(self, username: str) -> bool:
        handle = f"@{username}".lower()
        return any(f.username.lower() == handle for f in [*self.friends, *self.requests])


class CachedSyncState(BaseModel):
    current_user_id: uuid.UUID | None = None
    dirty_bit: uuid.UUID | None = None
    synced_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReconcileResult(BaseModel):
    reloaded: bool
    source: str  # "cache", "remote", "unchanged" or "unavailable"
    dirty_bit: uuid.UUID | None = None
    snapshot: FriendSnapshot | None = None


class SendFriendRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)


class MutationResult(BaseModel):
    changed: bool
    message: str
