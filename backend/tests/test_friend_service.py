"""Tests for the friend graph service - requests, confirmations, loading and timeouts."""

import asyncio

import pytest
from sqlalchemy import func, select

from squest.core.errors import (
    DuplicateRelationship,
    InvalidFriendRequest,
    NotAuthenticated,
    RelationshipNotFound,
    TransportError,
    UserNotFound,
)
from squest.models.friendship import STATUS_ACCEPTED, STATUS_PENDING, Friendship
from squest.schemas.friend import FriendSnapshot
from squest.services.friend_service import FriendGraphService
from tests.conftest import ALICE_ID, BOB_ID, CAROL_ID


class SlowStore:
    """Delegates to a real store, but the named call hangs for its first ``slow_calls`` attempts."""

    def __init__(self, store, method: str, slow_calls: int = 1_000, after: bool = False):
        self._store = store
        self._method = method
        self._slow_calls = slow_calls
        self._after = after
        self.calls = 0

    def __getattr__(self, name):
        target = getattr(self._store, name)
        if name != self._method:
            return target

        async def call(*args, **kwargs):
            self.calls += 1
            if self.calls > self._slow_calls:
                return await target(*args, **kwargs)
            if self._after:
                # The write lands, the reply does not
                await target(*args, **kwargs)
            await asyncio.sleep(10)

        return call


class FailingStore:
    """Delegates to a real store, but the named calls raise TransportError."""

    def __init__(self, store, *failing: str):
        self._store = store
        self._failing = set(failing)

    def __getattr__(self, name):
        if name not in self._failing:
            return getattr(self._store, name)

        async def call(*args, **kwargs):
            raise TransportError()

        return call


async def _rows(remote_sessions) -> list[Friendship]:
    async with remote_sessions() as session:
        return list((await session.execute(select(Friendship))).scalars().all())


# ---------------------------------------------------------------------------
# Request lifecycle
# ---------------------------------------------------------------------------


async def test_send_request_creates_pending_row(service, remote_sessions):
    result = await service.send_request(ALICE_ID, "bob")
    assert result.changed

    rows = await _rows(remote_sessions)
    assert len(rows) == 1
    assert (rows[0].user_id1, rows[0].user_id2, rows[0].status) == (ALICE_ID, BOB_ID, STATUS_PENDING)

    bob_view = await service.load_all(BOB_ID)
    assert [r.username for r in bob_view.requests] == ["@alice"]
    assert bob_view.requests[0].direction == "incoming"
    assert bob_view.requests[0].last_active == "Just now"

    alice_view = await service.load_all(ALICE_ID)
    assert alice_view.friends == []
    assert [(r.username, r.direction) for r in alice_view.requests] == [("@bob", "outgoing")]


async def test_confirm_makes_both_sides_friends(service, state):
    await service.send_request(ALICE_ID, "@Bob")
    result = await service.confirm_request(BOB_ID, ALICE_ID)
    assert result.changed

    alice_view = await service.load_all(ALICE_ID)
    bob_view = await service.load_all(BOB_ID)
    assert [f.user_id for f in alice_view.friends] == [BOB_ID]
    assert [f.user_id for f in bob_view.friends] == [ALICE_ID]
    assert alice_view.requests == [] and bob_view.requests == []

    # The refresh after confirming published Bob's lists
    assert state.state.friends_count == 1
    assert state.state.animating_request_id is None


async def test_repeat_request_is_duplicate(service, remote_sessions):
    await service.send_request(ALICE_ID, "bob")

    with pytest.raises(DuplicateRelationship):
        await service.send_request(ALICE_ID, "bob")
    assert len(await _rows(remote_sessions)) == 1


async def test_reverse_request_is_duplicate(service, remote_sessions):
    await service.send_request(ALICE_ID, "bob")

    with pytest.raises(DuplicateRelationship):
        await service.send_request(BOB_ID, "alice")
    assert len(await _rows(remote_sessions)) == 1


async def test_deny_deletes_row_and_bumps_both_bits(service, store, remote_sessions):
    await service.send_request(ALICE_ID, "bob")
    alice_bit = await store.fetch_dirty_bit(ALICE_ID)
    bob_bit = await store.fetch_dirty_bit(BOB_ID)

    result = await service.deny_request(BOB_ID, ALICE_ID)
    assert result.changed
    assert await _rows(remote_sessions) == []
    assert await store.fetch_dirty_bit(ALICE_ID) != alice_bit
    assert await store.fetch_dirty_bit(BOB_ID) != bob_bit

    for user_id in (ALICE_ID, BOB_ID):
        snapshot = await service.load_all(user_id)
        assert snapshot.friends == [] and snapshot.requests == []


async def test_every_mutation_changes_dirty_bits(service, store):
    seen = {ALICE_ID: {None}, BOB_ID: {None}}

    async def check_changed():
        for user_id, previous in seen.items():
            bit = await store.fetch_dirty_bit(user_id)
            assert bit not in previous
            previous.add(bit)

    await service.send_request(ALICE_ID, "bob")
    await check_changed()
    await service.confirm_request(BOB_ID, ALICE_ID)
    await check_changed()
    await service.unfriend(ALICE_ID, BOB_ID)
    await check_changed()


# ---------------------------------------------------------------------------
# Idempotency and invalid calls
# ---------------------------------------------------------------------------


async def test_confirm_twice_is_noop(service, store):
    await service.send_request(ALICE_ID, "bob")
    await service.confirm_request(BOB_ID, ALICE_ID)
    bit = await store.fetch_dirty_bit(BOB_ID)

    result = await service.confirm_request(BOB_ID, ALICE_ID)
    assert not result.changed
    assert await store.fetch_dirty_bit(BOB_ID) == bit


async def test_confirm_rules(service):
    with pytest.raises(RelationshipNotFound):
        await service.confirm_request(BOB_ID, ALICE_ID)

    await service.send_request(ALICE_ID, "bob")
    with pytest.raises(InvalidFriendRequest):
        await service.confirm_request(ALICE_ID, BOB_ID)


async def test_deny_missing_request_is_noop(service, store):
    result = await service.deny_request(BOB_ID, ALICE_ID)
    assert not result.changed
    assert await store.fetch_dirty_bit(BOB_ID) is None


async def test_deny_does_not_remove_friendship(service, remote_sessions):
    await service.send_request(ALICE_ID, "bob")
    await service.confirm_request(BOB_ID, ALICE_ID)

    result = await service.deny_request(BOB_ID, ALICE_ID)
    assert not result.changed
    assert [r.status for r in await _rows(remote_sessions)] == [STATUS_ACCEPTED]


async def test_invalid_targets(service):
    with pytest.raises(UserNotFound):
        await service.send_request(ALICE_ID, "nobody")
    with pytest.raises(InvalidFriendRequest):
        await service.send_request(ALICE_ID, "ALICE")
    with pytest.raises(NotAuthenticated):
        await service.send_request(None, "bob")
    with pytest.raises(NotAuthenticated):
        await service.load_all(None)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


async def test_load_all_unions_both_sides(service, store):
    await store.insert_request(ALICE_ID, BOB_ID)
    await store.accept_relationship(ALICE_ID, BOB_ID)
    await store.insert_request(CAROL_ID, ALICE_ID)
    await store.accept_relationship(ALICE_ID, CAROL_ID)

    snapshot = await service.load_all(ALICE_ID)
    by_id = {f.user_id: f for f in snapshot.friends}

    assert set(by_id) == {BOB_ID, CAROL_ID}
    assert len(snapshot.friends) == 2
    assert by_id[BOB_ID].name == "Bob"
    assert by_id[BOB_ID].on_quest == "Digital Detox"
    assert by_id[BOB_ID].last_active == "3 hours ago"
    assert by_id[CAROL_ID].profile_initials == "C"
    assert by_id[CAROL_ID].level == 4


async def test_search_users(service):
    results = await service.search_users(ALICE_ID, "@b")
    assert [u.username for u in results] == ["bob"]
    assert await service.search_users(ALICE_ID, "   ") == []


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


async def test_load_all_marks_stale_on_timeout(store, cache):
    slow = SlowStore(store, "accepted_as_user1")
    service = FriendGraphService(slow, cache, timeout=0.5, max_retries=1, refresh_delay=0)

    with pytest.raises(TransportError):
        await service.fetch_all(ALICE_ID)
    assert await service.load_all(ALICE_ID) == FriendSnapshot(is_stale=True)
    assert slow.calls == 4  # two calls, each retried once


async def test_failed_refresh_leaves_cache_untouched(store, cache):
    previous = FriendSnapshot()
    await cache.replace_snapshot(ALICE_ID, previous, None)
    slow = SlowStore(store, "pending_as_recipient")
    service = FriendGraphService(slow, cache, timeout=0.5, max_retries=0, refresh_delay=0)

    await store.insert_request(BOB_ID, ALICE_ID)
    with pytest.raises(TransportError):
        await service.refresh(ALICE_ID)
    assert await cache.read_snapshot(ALICE_ID) == previous


async def test_accept_retried_after_timeout(store, cache):
    await store.insert_request(ALICE_ID, BOB_ID)
    slow = SlowStore(store, "accept_relationship", slow_calls=1)
    service = FriendGraphService(slow, cache, timeout=0.5, max_retries=1, refresh_delay=0)

    result = await service.confirm_request(BOB_ID, ALICE_ID)
    assert result.changed
    assert slow.calls == 2


async def test_timed_out_insert_that_landed_counts_as_sent(store, cache, remote_sessions):
    slow = SlowStore(store, "insert_request", after=True)
    service = FriendGraphService(slow, cache, timeout=0.5, max_retries=1, refresh_delay=0)

    result = await service.send_request(ALICE_ID, "bob")
    assert result.changed
    assert slow.calls == 1
    assert len(await _rows(remote_sessions)) == 1


# ---------------------------------------------------------------------------
# Partial failures
# ---------------------------------------------------------------------------


async def test_mutations_stand_when_dirty_bit_bump_fails(store, cache, remote_sessions):
    service = FriendGraphService(
        FailingStore(store, "bump_dirty_bits"), cache, timeout=2.0, max_retries=0, refresh_delay=0
    )

    assert (await service.send_request(ALICE_ID, "bob")).changed
    assert [r.status for r in await _rows(remote_sessions)] == [STATUS_PENDING]

    assert (await service.confirm_request(BOB_ID, ALICE_ID)).changed
    assert [r.status for r in await _rows(remote_sessions)] == [STATUS_ACCEPTED]

    await store.insert_request(CAROL_ID, BOB_ID)
    assert (await service.deny_request(BOB_ID, CAROL_ID)).changed
    assert await store.find_relationship(BOB_ID, CAROL_ID) is None

    assert await store.fetch_dirty_bit(BOB_ID) is None


async def test_failed_confirm_or_deny_stops_animating(store, cache, state):
    await store.insert_request(ALICE_ID, BOB_ID)
    service = FriendGraphService(
        FailingStore(store, "accept_relationship", "delete_relationship"),
        cache, state, timeout=2.0, max_retries=0, refresh_delay=0,
    )

    with pytest.raises(TransportError):
        await service.confirm_request(BOB_ID, ALICE_ID)
    assert state.state.animating_request_id is None

    with pytest.raises(TransportError):
        await service.deny_request(BOB_ID, ALICE_ID)
    assert state.state.animating_request_id is None
    assert (await store.find_relationship(ALICE_ID, BOB_ID)).status == STATUS_PENDING
