"""Quest-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel


class Quest(BaseModel):
    """A catalog side quest, loaded from YAML."""
    sidequest_id: int
    name: str
    difficulty: str  # "S++", "S", "A", "B", "C" or "F"
    short_description: str
    long_description: str = ""
    estimated_duration: str = ""
    xp_reward_amount: int = 0
    gold_reward_amount: int = 0
    badge_img_url: str | None = None
    banner_img_url: str | None = None


class QuestListItem(Quest):
    in_progress: bool = False


class ActiveQuest(BaseModel):
    quest_id: int
    started_at: datetime


class QuestLogEntry(BaseModel):
    event: str  # "started", "completed" or "cancelled"
    message: str
    timestamp: datetime


class QuestCompleteResponse(BaseModel):
    quest: Quest
    xp_earned: int
    gold_earned: int
    total_xp: int
    total_gold: int
    level: int
    leveled_up: bool
