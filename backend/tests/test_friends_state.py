"""Tests for the friends screen state - reducer and observer store."""

import uuid

import pytest

from squest.core.friends_state import (
    FILTER_REQUESTS,
    FilterSelected,
    FriendsState,
    FriendsStateStore,
    RequestAnimating,
    SnapshotLoaded,
    StateCleared,
    reduce,
)
from squest.schemas.friend import FriendSnapshot, FriendView


def _view(name: str, direction: str | None = None) -> FriendView:
    return FriendView(
        user_id=uuid.uuid4(),
        name=name,
        username=f"@{name.lower()}",
        last_active="Unknown",
        profile_initials=name[0],
        status="pending" if direction else "accepted",
        direction=direction,
    )


def test_snapshot_replaces_lists_and_counts():
    snapshot = FriendSnapshot(
        friends=[_view("Bob")], requests=[_view("Carol", "incoming"), _view("Dan", "outgoing")]
    )
    bit = uuid.uuid4()
    state = reduce(FriendsState(), SnapshotLoaded(snapshot=snapshot, dirty_bit=bit))

    assert state.friends_count == 1
    assert state.requests_count == 2
    assert state.dirty_bit == bit
    assert state.displayed_friends == state.friends


def test_reducer_does_not_mutate_input():
    before = FriendsState()
    after = reduce(before, FilterSelected(selected_filter=FILTER_REQUESTS))
    assert before.selected_filter != FILTER_REQUESTS
    assert after.selected_filter == FILTER_REQUESTS


def test_unknown_filter_rejected():
    with pytest.raises(ValueError):
        reduce(FriendsState(), FilterSelected(selected_filter="everyone"))


def test_snapshot_clears_animating_row():
    target = uuid.uuid4()
    state = reduce(FriendsState(), RequestAnimating(user_id=target))
    assert state.animating_request_id == target

    state = reduce(state, SnapshotLoaded(snapshot=FriendSnapshot()))
    assert state.animating_request_id is None


def test_store_notifies_only_on_change():
    store = FriendsStateStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.dispatch(FilterSelected(selected_filter=FILTER_REQUESTS))
    store.dispatch(FilterSelected(selected_filter=FILTER_REQUESTS))
    assert len(seen) == 1

    unsubscribe()
    store.dispatch(StateCleared())
    assert len(seen) == 1
    assert store.state == FriendsState()
