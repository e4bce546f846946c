"""Interfaces of the two persistence collaborators: the remote store and the local cache.

Implementations raise ``TransportError`` for network, database and decoding
failures, and ``DuplicateRelationship`` when an insert hits an existing pair.
"""

import uuid
from typing import Protocol

from squest.schemas.friend import CachedSyncState, FriendRecord, FriendSnapshot, Relationship
from squest.schemas.user import UserSummary


class RelationshipStore(Protocol):
    # Accepted rows, split by which side the caller is stored on
    async def accepted_as_user1(self, user_id: uuid.UUID) -> list[FriendRecord]: ...

    async def accepted_as_user2(self, user_id: uuid.UUID) -> list[FriendRecord]: ...

    # Pending rows: caller is the recipient (user_id2) / the requester (user_id1)
    async def pending_as_recipient(self, user_id: uuid.UUID) -> list[FriendRecord]: ...

    async def pending_as_requester(self, user_id: uuid.UUID) -> list[FriendRecord]: ...

    async def find_relationship(self, a: uuid.UUID, b: uuid.UUID) -> Relationship | None: ...

    async def insert_request(self, from_user_id: uuid.UUID, to_user_id: uuid.UUID) -> Relationship: ...

    async def accept_relationship(self, a: uuid.UUID, b: uuid.UUID) -> int:
        """Set the pair's pending row to accepted; returns the number of rows changed."""
        ...

    async def delete_relationship(self, a: uuid.UUID, b: uuid.UUID, status: str) -> int:
        """Delete the pair's row if it has ``status``; returns the number of rows deleted."""
        ...

    async def bump_dirty_bits(self, a: uuid.UUID, b: uuid.UUID) -> None: ...

    async def fetch_dirty_bit(self, user_id: uuid.UUID) -> uuid.UUID | None: ...

    async def search_users(
        self, query: str, limit: int, exclude_user_id: uuid.UUID | None = None
    ) -> list[UserSummary]: ...

    async def find_user_id(self, username: str) -> uuid.UUID | None: ...


class LocalCache(Protocol):
    async def read_sync_state(self) -> CachedSyncState: ...

    async def read_snapshot(self, user_id: uuid.UUID) -> FriendSnapshot | None: ...

    async def replace_snapshot(
        self, user_id: uuid.UUID, snapshot: FriendSnapshot, dirty_bit: uuid.UUID | None
    ) -> None: ...

    async def clear(self) -> None: ...
