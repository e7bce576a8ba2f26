"""
PostgREST-backed repositories (Supabase-style REST interface over Postgres).

Tables:
    chatrooms(id, user_id, name, model, created_at, updated_at)
    messages(id, room_id, user_id, role, content, client_id, created_at, updated_at)
        unique (room_id, role, client_id)

Upserts use PostgREST's 'on_conflict' parameter together with
'Prefer: resolution=merge-duplicates', which turns the INSERT into
'INSERT ... ON CONFLICT (room_id, role, client_id) DO UPDATE'. Every request
carries the project API key and, when available, the user's bearer token so
row-level security applies.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp
from loguru import logger

from chat_lifecycle.conversation_database.data_models.conversation import Conversation, ConversationDatabase
from chat_lifecycle.conversation_database.data_models.message import MessageDatabase, MessageUpsert, StoredMessage
from chat_lifecycle.errors import PersistenceError
from chat_lifecycle.messages import Roles
from chat_lifecycle.utils.time import get_current_iso_timestamp, get_current_timestamp

_MESSAGE_COLUMNS = "id,room_id,user_id,role,content,client_id,created_at,updated_at"
_ROOM_COLUMNS = "id,user_id,name,model,created_at,updated_at"


def _to_millis(value: Any) -> int:
    if value is None:
        return get_current_timestamp()
    if isinstance(value, (int, float)):
        return int(value)
    return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp() * 1000)


def _row_to_message(row: dict[str, Any]) -> StoredMessage:
    return StoredMessage(
        id=row["id"],
        room_id=row["room_id"],
        user_id=row.get("user_id"),
        role=Roles(row["role"]),
        content=row.get("content") or "",
        client_id=row.get("client_id"),
        create_timestamp=_to_millis(row.get("created_at")),
        update_timestamp=_to_millis(row.get("updated_at") or row.get("created_at")),
    )


def _row_to_conversation(row: dict[str, Any]) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        model=row.get("model") or "",
        name=row.get("name") or "",
        create_timestamp=_to_millis(row.get("created_at")),
        update_timestamp=_to_millis(row.get("updated_at") or row.get("created_at")),
    )


class PostgRESTClient:
    """
    Thin JSON client for a PostgREST endpoint.

    Attributes:
        base_url: Root of the REST API, e.g. 'https://<project>.supabase.co/rest/v1'.
        api_key: Project API key sent as 'apikey'.
        access_token: Callable returning the current user token, or None to fall back to the API key.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Callable[[], str | None] | None = None,
        timeout_s: float = 10.0,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._http_session = http_session

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        token = (self.access_token() if self.access_token else None) or self.api_key
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{table}"
        try:
            if self._http_session is not None:
                return await self._send(self._http_session, method, url, params, json, prefer)
            async with aiohttp.ClientSession(timeout=self.timeout) as http:
                return await self._send(http, method, url, params, json, prefer)
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PersistenceError(f"{method} {table} failed: {exc}") from exc

    async def _send(
        self,
        http: aiohttp.ClientSession,
        method: str,
        url: str,
        params: dict[str, str] | None,
        json: Any,
        prefer: str | None,
    ) -> list[dict[str, Any]]:
        async with http.request(method, url, params=params, json=json, headers=self._headers(prefer)) as response:
            if response.status >= 400:
                body = await response.text()
                logger.debug(f"PostgREST {method} {url} -> {response.status}: {body}")
                raise PersistenceError(f"{method} {url} returned HTTP {response.status}")
            if response.status == 204:
                return []
            payload = await response.json(content_type=None)
            if payload is None:
                return []
            return payload if isinstance(payload, list) else [payload]


class PostgRESTConversationDatabase(ConversationDatabase):
    def __init__(self, client: PostgRESTClient, table: str = "chatrooms") -> None:
        self.client = client
        self.table = table

    async def create_conversation(self, user_id: str, model: str, name: str) -> Conversation:
        rows = await self.client.request(
            "POST",
            self.table,
            params={"select": _ROOM_COLUMNS},
            json={"user_id": user_id, "model": model, "name": name},
            prefer="return=representation",
        )
        if not rows:
            raise PersistenceError("Failed to create chat room")
        return _row_to_conversation(rows[0])

    async def get_conversation_by_id(self, conversation_id: int) -> Conversation | None:
        rows = await self.client.request(
            "GET", self.table, params={"id": f"eq.{conversation_id}", "select": _ROOM_COLUMNS}
        )
        return _row_to_conversation(rows[0]) if rows else None

    async def update_conversation(
        self,
        conversation_id: int,
        name: str | None = None,
        model: str | None = None,
    ) -> Conversation:
        changes: dict[str, Any] = {"updated_at": get_current_iso_timestamp()}
        if name is not None:
            changes["name"] = name
        if model is not None:
            changes["model"] = model
        rows = await self.client.request(
            "PATCH",
            self.table,
            params={"id": f"eq.{conversation_id}", "select": _ROOM_COLUMNS},
            json=changes,
            prefer="return=representation",
        )
        if not rows:
            raise KeyError(f"Conversation {conversation_id} not found")
        return _row_to_conversation(rows[0])


class PostgRESTMessageDatabase(MessageDatabase):
    def __init__(self, client: PostgRESTClient, table: str = "messages") -> None:
        self.client = client
        self.table = table

    async def upsert_messages(self, messages: list[MessageUpsert]) -> list[StoredMessage]:
        if not messages:
            return []
        rows = await self.client.request(
            "POST",
            self.table,
            params={"on_conflict": "room_id,role,client_id", "select": _MESSAGE_COLUMNS},
            json=[message.model_dump(mode="json") for message in messages],
            prefer="resolution=merge-duplicates,return=representation",
        )
        by_key = {(row["role"], row.get("client_id")): _row_to_message(row) for row in rows}
        ordered = [by_key.get((str(m.role), m.client_id)) for m in messages]
        if any(row is None for row in ordered):
            raise PersistenceError("Upsert did not return every written row")
        return [row for row in ordered if row is not None]

    async def update_message_content(self, message_id: int, content: str) -> StoredMessage | None:
        rows = await self.client.request(
            "PATCH",
            self.table,
            params={"id": f"eq.{message_id}", "select": _MESSAGE_COLUMNS},
            json={"content": content, "updated_at": get_current_iso_timestamp()},
            prefer="return=representation",
        )
        return _row_to_message(rows[0]) if rows else None

    async def update_message_content_by_client_id(
        self, room_id: int, role: Roles, client_id: str, content: str
    ) -> StoredMessage | None:
        rows = await self.client.request(
            "PATCH",
            self.table,
            params={
                "room_id": f"eq.{room_id}",
                "role": f"eq.{role}",
                "client_id": f"eq.{client_id}",
                "select": _MESSAGE_COLUMNS,
            },
            json={"content": content, "updated_at": get_current_iso_timestamp()},
            prefer="return=representation",
        )
        return _row_to_message(rows[0]) if rows else None

    async def get_messages_by_room_id(self, room_id: int) -> list[StoredMessage]:
        rows = await self.client.request(
            "GET",
            self.table,
            params={"room_id": f"eq.{room_id}", "order": "id.asc", "select": _MESSAGE_COLUMNS},
        )
        return [_row_to_message(row) for row in rows]
