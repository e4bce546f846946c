"""Domain errors surfaced to callers as typed failures."""


class FriendError(Exception):
    """Base class for friend-graph failures; ``message`` is safe to show to the user."""

    message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class UserNotFound(FriendError):
    message = "User not found."


class DuplicateRelationship(FriendError):
    message = "You are already friends or a request is already pending."


AlreadyRequestedOrFriends = DuplicateRelationship


class RelationshipNotFound(FriendError):
    message = "This friend request no longer exists."


class InvalidFriendRequest(FriendError):
    message = "This friend request is not valid."


class NotAuthenticated(FriendError):
    message = "You need to be signed in."


class TransportError(FriendError):
    """Network, database or decoding failure on a remote call."""
    message = "Could not reach the server. Please check your connection."


class QuestError(Exception):
    message = "Quest action failed."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class QuestNotFound(QuestError):
    message = "Quest not found."


class QuestAlreadyInProgress(QuestError):
    message = "Another quest is already in progress."


class NoActiveQuest(QuestError):
    message = "No quest is in progress."
