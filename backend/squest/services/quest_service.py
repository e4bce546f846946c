"""Quest service - the read-only quest catalog and start/complete/cancel progress."""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

import yaml
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from squest.core.errors import NoActiveQuest, QuestAlreadyInProgress, QuestNotFound
from squest.core.quest_engine import QuestEngine
from squest.schemas.quest import ActiveQuest, Quest, QuestCompleteResponse
from squest.services.reward_service import reward_service

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"

DIFFICULTY_ORDER = {"S++": 0, "S": 1, "A": 2, "B": 3, "C": 4, "F": 5}


def difficulty_rank(difficulty: str) -> int:
    return DIFFICULTY_ORDER.get(difficulty.upper(), len(DIFFICULTY_ORDER))


def _timestamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S")


class QuestCatalog:
    def __init__(self, path: Path = DATA_DIR / "quests.yaml"):
        self.path = path
        self._cache: dict[int, Quest] | None = None

    def load(self) -> dict[int, Quest]:
        """Load the catalog from YAML once."""
        if self._cache is not None:
            return self._cache

        if not self.path.exists():
            raise FileNotFoundError(f"Quest catalog not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        self._cache = {
            item["sidequest_id"]: Quest(**item) for item in raw.get("quests", [])
        }
        return self._cache

    def get(self, quest_id: int) -> Quest:
        quest = self.load().get(quest_id)
        if quest is None:
            raise QuestNotFound()
        return quest

    def sorted_quests(self, in_progress_id: int | None = None) -> list[Quest]:
        """In-progress quest first, then hardest first, then biggest XP reward."""
        return sorted(
            self.load().values(),
            key=lambda q: (
                q.sidequest_id != in_progress_id,
                difficulty_rank(q.difficulty),
                -q.xp_reward_amount,
            ),
        )


quest_catalog = QuestCatalog()


class QuestProgressService:
    def __init__(self, engine: QuestEngine, catalog: QuestCatalog = quest_catalog):
        self.engine = engine
        self.catalog = catalog

    async def start(self, db: AsyncSession, user_id: uuid.UUID, quest_id: int) -> ActiveQuest:
        """Start a quest. Starting the already active quest again is a no-op."""
        quest = self.catalog.get(quest_id)

        active = await self.engine.load_state(user_id)
        if active is not None:
            if active.quest_id == quest_id:
                return active
            raise QuestAlreadyInProgress()

        # DB first: an unknown user must not leave a quest behind in Redis
        await reward_service.set_current_quest(db, user_id, quest.name)

        active = await self.engine.save_state(user_id, quest_id)
        if active is None:
            raise QuestAlreadyInProgress()
        try:
            await db.commit()
        except SQLAlchemyError:
            await self.engine.clear_state(user_id)
            raise

        await self.engine.append_log(
            user_id, "started",
            f"Side quest {quest.sidequest_id}: {quest.name} started on {_timestamp(active.started_at)}",
        )
        logger.info("User %s started quest %s", user_id, quest_id)
        return active

    async def complete(self, db: AsyncSession, user_id: uuid.UUID) -> QuestCompleteResponse:
        active = await self._require_active(user_id)
        quest = self.catalog.get(active.quest_id)

        user, leveled_up = await reward_service.award(
            db, user_id, quest.xp_reward_amount, quest.gold_reward_amount
        )
        await reward_service.set_current_quest(db, user_id, None)
        # Rewards are committed before the quest is cleared
        await db.commit()
        await self.engine.clear_state(user_id)

        now = datetime.now(timezone.utc)
        await self.engine.append_log(
            user_id, "completed",
            f"Side quest {quest.sidequest_id}: {quest.name} completed on {_timestamp(now)}, "
            f"earning rewards of {quest.xp_reward_amount} XP, {quest.gold_reward_amount} Gold",
            timestamp=now,
        )
        if leveled_up:
            await self.engine.append_log(user_id, "leveled_up", f"user leveled up to level {user.level}")

        logger.info("User %s completed quest %s", user_id, quest.sidequest_id)
        return QuestCompleteResponse(
            quest=quest,
            xp_earned=quest.xp_reward_amount,
            gold_earned=quest.gold_reward_amount,
            total_xp=user.xp,
            total_gold=user.gold,
            level=user.level,
            leveled_up=leveled_up,
        )

    async def cancel(self, db: AsyncSession, user_id: uuid.UUID) -> ActiveQuest:
        active = await self._require_active(user_id)
        quest = self.catalog.get(active.quest_id)

        await reward_service.set_current_quest(db, user_id, None)
        await db.commit()
        await self.engine.clear_state(user_id)
        now = datetime.now(timezone.utc)
        await self.engine.append_log(
            user_id, "cancelled",
            f"Side quest {quest.sidequest_id}: {quest.name} cancelled on {_timestamp(now)}",
            timestamp=now,
        )
        logger.info("User %s cancelled quest %s", user_id, quest.sidequest_id)
        return active

    async def _require_active(self, user_id: uuid.UUID) -> ActiveQuest:
        active = await self.engine.load_state(user_id)
        if active is None:
            raise NoActiveQuest()
        return active
