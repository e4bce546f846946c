"""Remote relationship store speaking PostgREST to a Supabase project."""

import logging
import uuid
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from squest.core.errors import DuplicateRelationship, TransportError
from squest.models.friendship import STATUS_ACCEPTED, STATUS_PENDING
from squest.schemas.friend import FriendRecord, Relationship
from squest.schemas.user import UserSummary

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class _DirtyBitRow(BaseModel):
    friends_list_dirty_bit: uuid.UUID | None = None


class _UserIdRow(BaseModel):
    id: uuid.UUID


def _escape_like(value: str) -> str:
    """Escape LIKE metacharacters; PostgREST treats ``*`` as ``%``."""
    return (
        value.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
        .replace("*", "")
    )


def _pair_filter(a: uuid.UUID, b: uuid.UUID) -> str:
    return f"(and(user_id1.eq.{a},user_id2.eq.{b}),and(user_id1.eq.{b},user_id2.eq.{a}))"


class SupabaseRelationshipStore:
    """Table endpoints and RPCs under ``{base_url}/rest/v1``.

    The ``httpx.AsyncClient`` is owned by the caller so it can be shared and
    replaced with a mock transport in tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
    ):
        self._client = client
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = await self._client.request(
                method, f"{self._rest_url}/{path}", params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            # Unique violations come back as 409 Conflict
            if exc.response.status_code == 409:
                raise DuplicateRelationship() from exc
            logger.error("%s %s failed with %s", method, path, exc.response.status_code)
            raise TransportError() from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise TransportError() from exc
        return response

    @staticmethod
    def _decode(response: httpx.Response, model: type[T]) -> list[T]:
        try:
            return TypeAdapter(list[model]).validate_python(response.json())
        except (ValidationError, ValueError) as exc:
            logger.error("Could not decode %s rows: %s", model.__name__, exc)
            raise TransportError() from exc

    async def _rpc_rows(self, function: str, user_id: uuid.UUID) -> list[FriendRecord]:
        response = await self._request(
            "POST", f"rpc/{function}", json={"current_user_id": str(user_id)}
        )
        return self._decode(response, FriendRecord)

    # ------------------------------------------------------------------
    # Relationship queries
    # ------------------------------------------------------------------

    async def accepted_as_user1(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._rpc_rows("get_accepted_friends_as_user1", user_id)

    async def accepted_as_user2(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._rpc_rows("get_accepted_friends_as_user2", user_id)

    async def pending_as_recipient(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._rpc_rows("get_pending_requests_as_user2", user_id)

    async def pending_as_requester(self, user_id: uuid.UUID) -> list[FriendRecord]:
        return await self._rpc_rows("get_pending_requests_as_user1", user_id)

    async def find_relationship(self, a: uuid.UUID, b: uuid.UUID) -> Relationship | None:
        response = await self._request(
            "GET",
            "friendships",
            params={"select": "user_id1,user_id2,status", "or": _pair_filter(a, b), "limit": 1},
        )
        rows = self._decode(response, Relationship)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def insert_request(self, from_user_id: uuid.UUID, to_user_id: uuid.UUID) -> Relationship:
        row = Relationship(user_id1=from_user_id, user_id2=to_user_id, status=STATUS_PENDING)
        await self._request(
            "POST", "friendships", json=row.model_dump(mode="json"), prefer="return=minimal"
        )
        return row

    async def accept_relationship(self, a: uuid.UUID, b: uuid.UUID) -> int:
        response = await self._request(
            "PATCH",
            "friendships",
            params={"or": _pair_filter(a, b), "status": f"eq.{STATUS_PENDING}"},
            json={"status": STATUS_ACCEPTED},
            prefer="return=representation",
        )
        return len(self._decode(response, Relationship))

    async def delete_relationship(self, a: uuid.UUID, b: uuid.UUID, status: str) -> int:
        response = await self._request(
            "DELETE",
            "friendships",
            params={"or": _pair_filter(a, b), "status": f"eq.{status}"},
            prefer="return=representation",
        )
        return len(self._decode(response, Relationship))

    async def bump_dirty_bits(self, a: uuid.UUID, b: uuid.UUID) -> None:
        await self._request(
            "POST", "rpc/bump_friends_list_dirty_bits", json={"user_ids": [str(a), str(b)]}
        )

    async def fetch_dirty_bit(self, user_id: uuid.UUID) -> uuid.UUID | None:
        response = await self._request(
            "GET",
            "user_data",
            params={"select": "friends_list_dirty_bit", "user_id": f"eq.{user_id}", "limit": 1},
        )
        rows = self._decode(response, _DirtyBitRow)
        return rows[0].friends_list_dirty_bit if rows else None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def search_users(
        self, query: str, limit: int, exclude_user_id: uuid.UUID | None = None
    ) -> list[UserSummary]:
        params: dict[str, Any] = {
            "select": "id,username,displayed_name,avatar_url,level",
            "username": f"ilike.*{_escape_like(query)}*",
            "order": "username",
            "limit": limit,
        }
        if exclude_user_id is not None:
            params["id"] = f"neq.{exclude_user_id}"
        response = await self._request("GET", "users", params=params)
        return self._decode(response, UserSummary)

    async def find_user_id(self, username: str) -> uuid.UUID | None:
        response = await self._request(
            "GET",
            "users",
            params={"select": "id", "username": f"ilike.{_escape_like(username)}", "limit": 1},
        )
        rows = self._decode(response, _UserIdRow)
        return rows[0].id if rows else None
