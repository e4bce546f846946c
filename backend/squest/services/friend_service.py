"""Friend graph service - loads and mutates friendships, keeping the local cache in step.

Every remote call goes through ``_remote`` so it runs under a deadline.
Mutations that are safe to repeat (accept, delete, dirty-bit bump, reads) are
retried after a timeout; a timed-out insert is re-verified before retrying.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import TypeVar

from squest.config import settings
from squest.core.display import format_last_active, initials_for
from squest.core.errors import (
    DuplicateRelationship,
    InvalidFriendRequest,
    NotAuthenticated,
    RelationshipNotFound,
    TransportError,
    UserNotFound,
)
from squest.core.friends_state import FriendsStateStore, RequestAnimating, SnapshotLoaded
from squest.models.friendship import STATUS_ACCEPTED, STATUS_PENDING
from squest.schemas.friend import FriendRecord, FriendSnapshot, FriendView, MutationResult
from squest.schemas.user import UserSummary
from squest.stores.base import LocalCache, RelationshipStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DIRECTION_INCOMING = "incoming"
DIRECTION_OUTGOING = "outgoing"


def to_friend_view(
    record: FriendRecord, user_id: uuid.UUID, direction: str | None, now: datetime | None = None
) -> FriendView | None:
    """Project a raw row onto the other user of the pair; None if the row names no other user."""
    other_id = record.other_user_id(user_id)
    if other_id is None:
        return None
    return FriendView(
        user_id=other_id,
        name=record.displayed_name,
        username=f"@{record.username}",
        last_active=format_last_active(record.last_online, record.is_online, now),
        on_quest=record.current_quest,
        profile_initials=initials_for(record.displayed_name, record.username),
        level=record.level,
        avatar_url=record.avatar_url,
        status=record.status,
        direction=direction,
    )


def _unique_by_user(views: Iterable[FriendView | None]) -> list[FriendView]:
    seen: set[uuid.UUID] = set()
    unique = []
    for view in views:
        if view is None or view.user_id in seen:
            continue
        seen.add(view.user_id)
        unique.append(view)
    return unique


def _require_user(user_id: uuid.UUID | None) -> uuid.UUID:
    if user_id is None:
        raise NotAuthenticated()
    return user_id


class FriendGraphService:
    def __init__(
        self,
        store: RelationshipStore,
        cache: LocalCache,
        state: FriendsStateStore | None = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        refresh_delay: float | None = None,
    ):
        self.store = store
        self.cache = cache
        self.state = state
        self.timeout = settings.REMOTE_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_retries = settings.REMOTE_MAX_RETRIES if max_retries is None else max_retries
        self.refresh_delay = settings.REFRESH_DELAY_SECONDS if refresh_delay is None else refresh_delay

    async def _remote(self, call: Callable[[], Awaitable[T]], retries: int = 0) -> T:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(call(), self.timeout)
            except TimeoutError as exc:
                if attempt >= retries:
                    logger.error("Remote call timed out after %d attempt(s)", attempt + 1)
                    raise TransportError("The server took too long to respond.") from exc
                attempt += 1
                logger.warning("Remote call timed out, retrying (%d/%d)", attempt, retries)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def fetch_all(self, user_id: uuid.UUID) -> FriendSnapshot:
        """Load accepted friends and pending requests; raises TransportError on failure."""
        _require_user(user_id)
        accepted_1, accepted_2, incoming, outgoing = await asyncio.gather(
            self._remote(lambda: self.store.accepted_as_user1(user_id), self.max_retries),
            self._remote(lambda: self.store.accepted_as_user2(user_id), self.max_retries),
            self._remote(lambda: self.store.pending_as_recipient(user_id), self.max_retries),
            self._remote(lambda: self.store.pending_as_requester(user_id), self.max_retries),
        )

        now = datetime.now(timezone.utc)
        friends = _unique_by_user(
            to_friend_view(r, user_id, None, now) for r in accepted_1 + accepted_2
        )
        requests = _unique_by_user(
            [to_friend_view(r, user_id, DIRECTION_INCOMING, now) for r in incoming]
            + [to_friend_view(r, user_id, DIRECTION_OUTGOING, now) for r in outgoing]
        )
        logger.info("Loaded %d friends and %d requests for %s", len(friends), len(requests), user_id)
        return FriendSnapshot(friends=friends, requests=requests)

    async def load_all(self, user_id: uuid.UUID) -> FriendSnapshot:
        """Like fetch_all, but a transport failure yields an empty snapshot marked stale."""
        try:
            return await self.fetch_all(user_id)
        except TransportError as exc:
            logger.warning("Failed to load friends for %s: %s", user_id, exc)
            return FriendSnapshot(is_stale=True)

    async def fetch_dirty_bit(self, user_id: uuid.UUID) -> uuid.UUID | None:
        return await self._remote(lambda: self.store.fetch_dirty_bit(user_id), self.max_retries)

    async def refresh(
        self, user_id: uuid.UUID, known_dirty_bit: uuid.UUID | None = None
    ) -> FriendSnapshot:
        """Reload from the remote and overwrite the local cache.

        The cache is written only after a complete load. If the dirty bit cannot
        be read, None is stored so the next reconcile reloads again.
        """
        dirty_bit = known_dirty_bit
        if dirty_bit is None:
            try:
                dirty_bit = await self.fetch_dirty_bit(user_id)
            except TransportError as exc:
                logger.warning("Could not read dirty bit for %s: %s", user_id, exc)

        snapshot = await self.fetch_all(user_id)
        await self.cache.replace_snapshot(user_id, snapshot, dirty_bit)
        self.publish(snapshot, dirty_bit)
        return snapshot

    def publish(self, snapshot: FriendSnapshot, dirty_bit: uuid.UUID | None) -> None:
        if self.state is not None:
            self.state.dispatch(SnapshotLoaded(snapshot=snapshot, dirty_bit=dirty_bit))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def send_request(self, from_user_id: uuid.UUID, to_username: str) -> MutationResult:
        _require_user(from_user_id)
        username = to_username.strip().lstrip("@")
        if not username:
            raise UserNotFound()

        # Cheap local check first; the remote row lookup below is authoritative
        if self.state is not None:
            known = self.state.state.as_snapshot()
        else:
            known = await self.cache.read_snapshot(from_user_id)
        if known is not None and known.contains_username(username):
            raise DuplicateRelationship()

        target_id = await self._remote(lambda: self.store.find_user_id(username), self.max_retries)
        if target_id is None:
            raise UserNotFound(f'No user named "{username}".')
        if target_id == from_user_id:
            raise InvalidFriendRequest("You can't send a friend request to yourself.")

        existing = await self._remote(
            lambda: self.store.find_relationship(from_user_id, target_id), self.max_retries
        )
        if existing is not None:
            raise DuplicateRelationship()

        await self._insert_request(from_user_id, target_id)
        logger.info("Friend request %s -> %s created", from_user_id, target_id)

        await self._bump(from_user_id, target_id)
        await self._refresh_quietly(from_user_id)
        return MutationResult(changed=True, message="Friend request sent")

    async def _insert_request(self, from_user_id: uuid.UUID, to_user_id: uuid.UUID) -> None:
        attempt = 0
        while True:
            try:
                await asyncio.wait_for(
                    self.store.insert_request(from_user_id, to_user_id), self.timeout
                )
                return
            except TimeoutError as exc:
                # The insert may have landed before the deadline hit
                existing = await self._remote(
                    lambda: self.store.find_relationship(from_user_id, to_user_id), self.max_retries
                )
                if existing is not None:
                    if existing.user_id1 == from_user_id and existing.status == STATUS_PENDING:
                        return
                    raise DuplicateRelationship() from exc
                if attempt >= self.max_retries:
                    raise TransportError("The server took too long to respond.") from exc
                attempt += 1
                logger.warning("Friend request insert timed out, retrying (%d/%d)", attempt, self.max_retries)

    async def confirm_request(
        self, responding_user_id: uuid.UUID, other_user_id: uuid.UUID
    ) -> MutationResult:
        """Accept the pending request between the two users.

        Confirming twice is a no-op; only the recipient may confirm.
        """
        _require_user(responding_user_id)
        relationship = await self._remote(
            lambda: self.store.find_relationship(responding_user_id, other_user_id), self.max_retries
        )
        if relationship is None:
            raise RelationshipNotFound()
        if relationship.status == STATUS_ACCEPTED:
            return MutationResult(changed=False, message="You are already friends")
        if relationship.user_id2 != responding_user_id:
            raise InvalidFriendRequest("Only the recipient can accept a friend request.")

        self._animate(other_user_id)
        try:
            updated = await self._remote(
                lambda: self.store.accept_relationship(responding_user_id, other_user_id),
                self.max_retries,
            )
        except TransportError:
            self._animate(None)
            raise
        if not updated:
            self._animate(None)
            return MutationResult(changed=False, message="This friend request was already handled")

        logger.info("Friend request %s -> %s accepted", other_user_id, responding_user_id)
        await self._bump(responding_user_id, other_user_id)
        await self._refresh_after_delay(responding_user_id)
        return MutationResult(changed=True, message="Friend request accepted")

    async def deny_request(
        self, responding_user_id: uuid.UUID, other_user_id: uuid.UUID
    ) -> MutationResult:
        """Delete the pending request between the two users, from either side."""
        _require_user(responding_user_id)
        self._animate(other_user_id)
        try:
            deleted = await self._remote(
                lambda: self.store.delete_relationship(responding_user_id, other_user_id, STATUS_PENDING),
                self.max_retries,
            )
        except TransportError:
            self._animate(None)
            raise
        if not deleted:
            self._animate(None)
            return MutationResult(changed=False, message="No pending friend request to deny")

        logger.info("Friend request between %s and %s denied", responding_user_id, other_user_id)
        await self._bump(responding_user_id, other_user_id)
        await self._refresh_after_delay(responding_user_id)
        return MutationResult(changed=True, message="Friend request denied")

    async def unfriend(self, user_id: uuid.UUID, other_user_id: uuid.UUID) -> MutationResult:
        _require_user(user_id)
        deleted = await self._remote(
            lambda: self.store.delete_relationship(user_id, other_user_id, STATUS_ACCEPTED),
            self.max_retries,
        )
        if not deleted:
            return MutationResult(changed=False, message="You are not friends with this user")

        logger.info("Friendship between %s and %s removed", user_id, other_user_id)
        await self._bump(user_id, other_user_id)
        await self._refresh_quietly(user_id)
        return MutationResult(changed=True, message="Friend removed")

    async def search_users(
        self, user_id: uuid.UUID, query: str, limit: int | None = None
    ) -> list[UserSummary]:
        _require_user(user_id)
        query = query.strip().lstrip("@")
        if not query:
            return []
        return await self._remote(
            lambda: self.store.search_users(query, limit or settings.USER_SEARCH_LIMIT, user_id),
            self.max_retries,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _bump(self, a: uuid.UUID, b: uuid.UUID) -> None:
        # Best effort: the mutation itself is never rolled back
        try:
            await self._remote(lambda: self.store.bump_dirty_bits(a, b), self.max_retries)
        except TransportError as exc:
            logger.error("Could not bump dirty bits for %s and %s: %s", a, b, exc)

    def _animate(self, user_id: uuid.UUID | None) -> None:
        if self.state is not None:
            self.state.dispatch(RequestAnimating(user_id=user_id))

    async def _refresh_after_delay(self, user_id: uuid.UUID) -> None:
        if self.refresh_delay > 0:
            await asyncio.sleep(self.refresh_delay)
        await self._refresh_quietly(user_id)

    async def _refresh_quietly(self, user_id: uuid.UUID) -> None:
        try:
            await self.refresh(user_id)
        except TransportError as exc:
            # The mutation stands; the changed dirty bit makes the next reconcile reload
            logger.warning("Refresh after mutation failed for %s: %s", user_id, exc)
