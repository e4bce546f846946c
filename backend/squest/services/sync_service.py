"""Sync coordinator - decides whether the local friends cache is stale.

The cached dirty bit is compared with the remote one; only a difference (or a
missing value on either side) triggers a full reload. What happens when the
remote dirty bit cannot be read is set by the fail policy:

- ``fail-open``: keep using the cache, no reload.
- ``fail-closed``: assume the cache is stale and attempt the reload.
"""

import logging
import uuid

from squest.config import settings
from squest.core.errors import NotAuthenticated, TransportError
from squest.schemas.friend import ReconcileResult
from squest.services.friend_service import FriendGraphService

logger = logging.getLogger(__name__)

FAIL_OPEN = "fail-open"
FAIL_CLOSED = "fail-closed"

SOURCE_CACHE = "cache"
SOURCE_REMOTE = "remote"
SOURCE_UNCHANGED = "unchanged"
SOURCE_UNAVAILABLE = "unavailable"


class SyncCoordinator:
    def __init__(self, friends: FriendGraphService, fail_policy: str | None = None):
        policy = fail_policy or settings.DIRTY_BIT_FAIL_POLICY
        if policy not in (FAIL_OPEN, FAIL_CLOSED):
            raise ValueError(f"Unknown dirty bit fail policy: {policy}")
        self.friends = friends
        self.cache = friends.cache
        self.fail_policy = policy

    async def reconcile(self, user_id: uuid.UUID, first_run: bool = False) -> ReconcileResult:
        """Bring the local cache up to date with at most one full reload."""
        if user_id is None:
            raise NotAuthenticated()

        sync_state = await self.cache.read_sync_state()
        cached_bit = sync_state.dirty_bit if sync_state.current_user_id == user_id else None

        try:
            remote_bit = await self.friends.fetch_dirty_bit(user_id)
        except TransportError as exc:
            if self.fail_policy == FAIL_OPEN:
                logger.warning("Dirty bit check failed for %s, keeping cache: %s", user_id, exc)
                return await self._from_cache(user_id, cached_bit, first_run)
            logger.warning("Dirty bit check failed for %s, reloading: %s", user_id, exc)
            remote_bit = None

        if remote_bit is not None and cached_bit == remote_bit:
            return await self._from_cache(user_id, cached_bit, first_run)

        logger.info("Friends cache for %s is stale (cached=%s, remote=%s)", user_id, cached_bit, remote_bit)
        try:
            snapshot = await self.friends.refresh(user_id, known_dirty_bit=remote_bit)
        except TransportError as exc:
            logger.error("Reload failed for %s, cache left untouched: %s", user_id, exc)
            return ReconcileResult(reloaded=False, source=SOURCE_UNAVAILABLE, dirty_bit=cached_bit)

        return ReconcileResult(
            reloaded=True, source=SOURCE_REMOTE, dirty_bit=remote_bit, snapshot=snapshot
        )

    async def _from_cache(
        self, user_id: uuid.UUID, cached_bit: uuid.UUID | None, first_run: bool
    ) -> ReconcileResult:
        if not first_run:
            return ReconcileResult(reloaded=False, source=SOURCE_UNCHANGED, dirty_bit=cached_bit)

        snapshot = await self.cache.read_snapshot(user_id)
        if snapshot is None:
            return ReconcileResult(reloaded=False, source=SOURCE_UNAVAILABLE, dirty_bit=cached_bit)
        self.friends.publish(snapshot, cached_bit)
        return ReconcileResult(
            reloaded=False, source=SOURCE_CACHE, dirty_bit=cached_bit, snapshot=snapshot
        )
