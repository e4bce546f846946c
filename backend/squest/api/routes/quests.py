"""Quest endpoints - catalog, start/complete/cancel, and the quest log."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from squest.api.deps import get_current_user_id, get_quest_progress
from squest.db.database import get_db
from squest.schemas.quest import (
    ActiveQuest,
    QuestCompleteResponse,
    QuestListItem,
    QuestLogEntry,
)
from squest.services.quest_service import QuestProgressService

router = APIRouter()


@router.get("/", response_model=list[QuestListItem])
async def list_quests(
    user_id: uuid.UUID = Depends(get_current_user_id),
    progress: QuestProgressService = Depends(get_quest_progress),
):
    """All side quests, the in-progress one first."""
    active = await progress.engine.load_state(user_id)
    active_id = active.quest_id if active else None
    return [
        QuestListItem(**quest.model_dump(), in_progress=quest.sidequest_id == active_id)
        for quest in progress.catalog.sorted_quests(active_id)
    ]


@router.get("/active", response_model=ActiveQuest | None)
async def get_active_quest(
    user_id: uuid.UUID = Depends(get_current_user_id),
    progress: QuestProgressService = Depends(get_quest_progress),
):
    return await progress.engine.load_state(user_id)


@router.post("/{quest_id}/start", response_model=ActiveQuest)
async def start_quest(
    quest_id: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    progress: QuestProgressService = Depends(get_quest_progress),
    db: AsyncSession = Depends(get_db),
):
    return await progress.start(db, user_id, quest_id)


@router.post("/active/complete", response_model=QuestCompleteResponse)
async def complete_quest(
    user_id: uuid.UUID = Depends(get_current_user_id),
    progress: QuestProgressService = Depends(get_quest_progress),
    db: AsyncSession = Depends(get_db),
):
    """Award the active quest's rewards and clear it."""
    return await progress.complete(db, user_id)


@router.post("/active/cancel", response_model=ActiveQuest)
async def cancel_quest(
    user_id: uuid.UUID = Depends(get_current_user_id),
    progress: QuestProgressService = Depends(get_quest_progress),
    db: AsyncSession = Depends(get_db),
):
    return await progress.cancel(db, user_id)


@router.get("/log", response_model=list[QuestLogEntry])
async def get_quest_log(
    user_id: uuid.UUID = Depends(get_current_user_id),
    progress: QuestProgressService = Depends(get_quest_progress),
):
    """Newest first."""
    return await progress.engine.read_log(user_id)
