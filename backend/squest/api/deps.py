"""FastAPI dependencies wiring stores and services together."""

import uuid

import redis.asyncio as aioredis
from fastapi import Depends, Header

from squest.config import settings
from squest.core.errors import NotAuthenticated
from squest.core.quest_engine import QuestEngine
from squest.db.database import async_session
from squest.db.http import get_http_client
from squest.db.local_cache import local_session
from squest.db.redis import get_redis
from squest.services.friend_service import FriendGraphService
from squest.services.quest_service import QuestProgressService
from squest.services.sync_service import SyncCoordinator
from squest.stores.base import LocalCache, RelationshipStore
from squest.stores.local_cache import SqlLocalCache
from squest.stores.sql_store import SqlRelationshipStore
from squest.stores.supabase_store import SupabaseRelationshipStore


def get_relationship_store() -> RelationshipStore:
    if settings.REMOTE_BACKEND == "supabase":
        return SupabaseRelationshipStore(
            get_http_client(), settings.SUPABASE_URL, settings.SUPABASE_KEY
        )
    return SqlRelationshipStore(async_session)


def get_local_cache() -> LocalCache:
    return SqlLocalCache(local_session)


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> uuid.UUID:
    """The signed-in user, passed by the device as ``X-User-Id``."""
    if not x_user_id:
        raise NotAuthenticated()
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise NotAuthenticated()


def get_friend_service(
    store: RelationshipStore = Depends(get_relationship_store),
    cache: LocalCache = Depends(get_local_cache),
) -> FriendGraphService:
    return FriendGraphService(store, cache)


def get_sync_coordinator(
    friends: FriendGraphService = Depends(get_friend_service),
) -> SyncCoordinator:
    return SyncCoordinator(friends)


def get_quest_progress(redis: aioredis.Redis = Depends(get_redis)) -> QuestProgressService:
    return QuestProgressService(QuestEngine(redis))
