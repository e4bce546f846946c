"""Friend endpoints - reconcile the cache, list friends, send and answer requests."""

import uuid

from fastapi import APIRouter, Depends

from squest.api.deps import (
    get_current_user_id,
    get_friend_service,
    get_local_cache,
    get_sync_coordinator,
)
from squest.schemas.friend import (
    FriendSnapshot,
    MutationResult,
    ReconcileResult,
    SendFriendRequest,
)
from squest.services.friend_service import FriendGraphService
from squest.services.sync_service import SyncCoordinator
from squest.stores.base import LocalCache

router = APIRouter()


@router.post("/reconcile", response_model=ReconcileResult)
async def reconcile(
    first_run: bool = False,
    user_id: uuid.UUID = Depends(get_current_user_id),
    coordinator: SyncCoordinator = Depends(get_sync_coordinator),
):
    """Compare dirty bits and reload the cache if they differ."""
    return await coordinator.reconcile(user_id, first_run=first_run)


@router.get("/", response_model=FriendSnapshot)
async def list_friends(
    user_id: uuid.UUID = Depends(get_current_user_id),
    cache: LocalCache = Depends(get_local_cache),
    friends: FriendGraphService = Depends(get_friend_service),
):
    """Friends and requests from the cache, or straight from the remote if nothing is cached."""
    snapshot = await cache.read_snapshot(user_id)
    if snapshot is not None:
        return snapshot
    return await friends.load_all(user_id)


@router.post("/requests", response_model=MutationResult, status_code=201)
async def send_request(
    req: SendFriendRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    friends: FriendGraphService = Depends(get_friend_service),
):
    return await friends.send_request(user_id, req.username)


@router.post("/requests/{other_user_id}/confirm", response_model=MutationResult)
async def confirm_request(
    other_user_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    friends: FriendGraphService = Depends(get_friend_service),
):
    return await friends.confirm_request(user_id, other_user_id)


@router.post("/requests/{other_user_id}/deny", response_model=MutationResult)
async def deny_request(
    other_user_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    friends: FriendGraphService = Depends(get_friend_service),
):
    return await friends.deny_request(user_id, other_user_id)


@router.delete("/{other_user_id}", response_model=MutationResult)
async def unfriend(
    other_user_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    friends: FriendGraphService = Depends(get_friend_service),
):
    return await friends.unfriend(user_id, other_user_id)
