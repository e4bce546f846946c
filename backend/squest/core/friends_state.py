"""Friends screen state: immutable snapshots, a pure reducer and an observer store."""

import logging
import uuid
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from squest.schemas.friend import FriendSnapshot, FriendView

logger = logging.getLogger(__name__)

FILTER_MY_FRIENDS = "my_friends"
FILTER_REQUESTS = "requests"


class FriendsState(BaseModel):
    model_config = ConfigDict(frozen=True)

    friends: tuple[FriendView, ...] = ()
    requests: tuple[FriendView, ...] = ()
    selected_filter: str = FILTER_MY_FRIENDS
    animating_request_id: uuid.UUID | None = None
    dirty_bit: uuid.UUID | None = None
    is_stale: bool = False

    @property
    def friends_count(self) -> int:
        return len(self.friends)

    @property
    def requests_count(self) -> int:
        return len(self.requests)

    @property
    def displayed_friends(self) -> tuple[FriendView, ...]:
        return self.requests if self.selected_filter == FILTER_REQUESTS else self.friends

    def as_snapshot(self) -> FriendSnapshot:
        return FriendSnapshot(
            friends=list(self.friends), requests=list(self.requests), is_stale=self.is_stale
        )


# --- Events ---

class SnapshotLoaded(BaseModel):
    snapshot: FriendSnapshot
    dirty_bit: uuid.UUID | None = None


class FilterSelected(BaseModel):
    selected_filter: str


class RequestAnimating(BaseModel):
    user_id: uuid.UUID | None


class StateCleared(BaseModel):
    pass


FriendsEvent = SnapshotLoaded | FilterSelected | RequestAnimating | StateCleared


def reduce(state: FriendsState, event: FriendsEvent) -> FriendsState:
    """Return the state that follows ``event``; ``state`` itself is never modified."""
    if isinstance(event, SnapshotLoaded):
        # The refreshed list replaces whatever row was animating out
        return state.model_copy(update={
            "friends": tuple(event.snapshot.friends),
            "requests": tuple(event.snapshot.requests),
            "is_stale": event.snapshot.is_stale,
            "dirty_bit": event.dirty_bit,
            "animating_request_id": None,
        })
    if isinstance(event, FilterSelected):
        if event.selected_filter not in (FILTER_MY_FRIENDS, FILTER_REQUESTS):
            raise ValueError(f"Unknown filter: {event.selected_filter}")
        return state.model_copy(update={"selected_filter": event.selected_filter})
    if isinstance(event, RequestAnimating):
        return state.model_copy(update={"animating_request_id": event.user_id})
    if isinstance(event, StateCleared):
        return FriendsState()
    raise TypeError(f"Unsupported event: {type(event).__name__}")


Subscriber = Callable[[FriendsState], None]


class FriendsStateStore:
    """Holds the current FriendsState and notifies subscribers on every change."""

    def __init__(self, initial: FriendsState | None = None):
        self._state = initial or FriendsState()
        self._subscribers: list[Subscriber] = []

    @property
    def state(self) -> FriendsState:
        return self._state

    def dispatch(self, event: FriendsEvent) -> FriendsState:
        new_state = reduce(self._state, event)
        if new_state == self._state:
            return self._state
        self._state = new_state
        for subscriber in list(self._subscribers):
            subscriber(new_state)
        return new_state

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register ``subscriber``; call the returned function to unsubscribe."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe
