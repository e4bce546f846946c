"""Shared test fixtures - per-test SQLite files for the remote store and the local cache."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from squest.api.deps import get_local_cache, get_relationship_store
from squest.core.friends_state import FriendsStateStore
from squest.db.database import Base, get_db
from squest.db.local_cache import LocalBase
from squest.db.redis import get_redis
from squest.models.user import User
from squest.services.friend_service import FriendGraphService
from squest.stores.local_cache import SqlLocalCache
from squest.stores.sql_store import SqlRelationshipStore

ALICE_ID = uuid.UUID("00000000-0000-0000-0000-00000000000a")
BOB_ID = uuid.UUID("00000000-0000-0000-0000-00000000000b")
CAROL_ID = uuid.UUID("00000000-0000-0000-0000-00000000000c")


class FakeRedis:
    """In-memory stand-in for the few redis.asyncio commands the quest engine uses."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, nx=False):
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.lists.pop(key, None) is not None)
        return removed

    async def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key, start, end):
        items = self.lists.get(key, [])
        self.lists[key] = items[start:] if end == -1 else items[start:end + 1]
        return True

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]


@pytest.fixture
async def remote_sessions(tmp_path):
    """Session factory for the remote relational store."""
    import squest.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/remote.db", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def cache_sessions(tmp_path):
    """Session factory for the on-device cache."""
    import squest.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/cache.db", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(LocalBase.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def users(remote_sessions):
    """Alice, Bob and Carol, with no relationships and no dirty bits yet."""
    now = datetime.now(timezone.utc)
    async with remote_sessions() as session:
        session.add_all([
            User(id=ALICE_ID, username="alice", displayed_name="Alice Smith",
                 is_online=True, last_online=now),
            User(id=BOB_ID, username="bob", displayed_name="Bob",
                 last_online=now - timedelta(hours=3), current_quest="Digital Detox"),
            User(id=CAROL_ID, username="Carol_K", displayed_name="",
                 level=4, xp=1600),
        ])
        await session.commit()
    return {"alice": ALICE_ID, "bob": BOB_ID, "carol": CAROL_ID}


@pytest.fixture
async def db(remote_sessions, users):
    """Direct async DB session for service-level tests."""
    async with remote_sessions() as session:
        yield session
        await session.commit()


@pytest.fixture
def store(remote_sessions, users):
    return SqlRelationshipStore(remote_sessions)


@pytest.fixture
def cache(cache_sessions):
    return SqlLocalCache(cache_sessions)


@pytest.fixture
def state():
    return FriendsStateStore()


@pytest.fixture
def service(store, cache, state):
    return FriendGraphService(store, cache, state, timeout=2.0, max_retries=1, refresh_delay=0)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def client(remote_sessions, cache_sessions, users, fake_redis):
    """Async HTTP test client with test DB, cache and Redis overrides."""
    from squest.main import app

    async def _override_get_db():
        async with remote_sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_redis] = _override_get_redis
    app.dependency_overrides[get_relationship_store] = lambda: SqlRelationshipStore(remote_sessions)
    app.dependency_overrides[get_local_cache] = lambda: SqlLocalCache(cache_sessions)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
