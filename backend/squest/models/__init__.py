"""Database models package."""

from squest.models.user import User
from squest.models.friendship import Friendship
from squest.models.user_data import UserData
from squest.models.local_cache import CachedFriend, SyncState

__all__ = ["User", "Friendship", "UserData", "CachedFriend", "SyncState"]
