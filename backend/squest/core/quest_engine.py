"""Quest engine - tracks the single in-progress quest and the quest log in Redis."""

from datetime import datetime, timezone

import redis.asyncio as aioredis

from squest.config import settings
from squest.schemas.quest import ActiveQuest, QuestLogEntry


class QuestEngine:
    """At most one active quest per user, stored as ``{quest_id, started_at}``."""

    def __init__(self, redis: aioredis.Redis, log_limit: int | None = None):
        self.redis = redis
        self.log_limit = log_limit or settings.QUEST_LOG_LIMIT

    def _state_key(self, user_id) -> str:
        return f"quest:active:{user_id}"

    def _log_key(self, user_id) -> str:
        return f"quest:log:{user_id}"

    async def save_state(self, user_id, quest_id: int) -> ActiveQuest | None:
        """Mark ``quest_id`` active. Returns None if another quest already is."""
        active = ActiveQuest(quest_id=quest_id, started_at=datetime.now(timezone.utc))
        created = await self.redis.set(
            self._state_key(user_id), active.model_dump_json(), nx=True
        )
        return active if created else None

    async def load_state(self, user_id) -> ActiveQuest | None:
        raw = await self.redis.get(self._state_key(user_id))
        if raw:
            return ActiveQuest.model_validate_json(raw)
        return None

    async def clear_state(self, user_id) -> None:
        await self.redis.delete(self._state_key(user_id))

    async def append_log(
        self, user_id, event: str, message: str, timestamp: datetime | None = None
    ) -> QuestLogEntry:
        entry = QuestLogEntry(
            event=event, message=message, timestamp=timestamp or datetime.now(timezone.utc)
        )
        key = self._log_key(user_id)
        await self.redis.lpush(key, entry.model_dump_json())
        await self.redis.ltrim(key, 0, self.log_limit - 1)
        return entry

    async def read_log(self, user_id) -> list[QuestLogEntry]:
        """Newest first."""
        raw_entries = await self.redis.lrange(self._log_key(user_id), 0, -1)
        return [QuestLogEntry.model_validate_json(raw) for raw in raw_entries]
