"""Async engine for the on-device cache database.

Kept apart from the remote store's metadata so ``create_all`` on one never
creates the other's tables.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from squest.config import settings

local_engine = create_async_engine(settings.LOCAL_CACHE_URL, echo=False)
local_session = async_sessionmaker(local_engine, class_=AsyncSession, expire_on_commit=False)


class LocalBase(DeclarativeBase):
    pass
