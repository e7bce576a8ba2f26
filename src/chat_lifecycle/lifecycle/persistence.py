"""
Durable storage of conversation turns.

'PersistenceGateway' sits between the lifecycle and the two repositories. It
has two kinds of callers:

    awaited   - 'create_room_if_needed' and 'load_turns'. The flow cannot go on
                without their result, so failures surface as 'PersistenceError'.
    detached  - message writes after a reveal. They run as background tasks
                started with 'spawn'; a failure is logged and the turn stays in
                the UI only. Nothing on the user's path waits for them.

Message writes are upserts on '(room_id, role, client_id)', so a write replayed
after a retry, a race or a regeneration overwrites the existing row. A pair
write stores the assistant turn as the UI shows it once completed, so a
write that lands after a regeneration never brings back the older answer.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from chat_lifecycle.auth.base import Session
from chat_lifecycle.conversation_database.data_models.conversation import ConversationDatabase
from chat_lifecycle.conversation_database.data_models.message import MessageDatabase, MessageUpsert, StoredMessage
from chat_lifecycle.errors import PersistenceError
from chat_lifecycle.messages import Roles, Turn, TurnState
from chat_lifecycle.state.turn_list import TurnList

ROOM_NAME_MAX_LENGTH = 100
DEFAULT_ROOM_NAME = "New Chat"
DB_ID_PREFIX = "db:"


def turn_from_stored(message: StoredMessage) -> Turn:
    """Map a stored row to a completed UI turn, keyed by its client id when it has one."""
    return Turn(
        id=message.client_id or f"{DB_ID_PREFIX}{message.id}",
        role=message.role,
        content=message.content,
        state=TurnState.COMPLETED,
        timestamp=message.create_timestamp,
        database_id=message.id,
    )


class PersistenceGateway:
    def __init__(
        self,
        conversation_db: ConversationDatabase,
        message_db: MessageDatabase,
        turns: TurnList | None = None,
    ) -> None:
        self.conversation_db = conversation_db
        self.message_db = message_db
        self.turns = turns
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def create_room_if_needed(self, room_id: int | None, session: Session, model: str, request_id: str) -> int:
        if room_id is not None:
            logger.debug(f"Using existing room {room_id}")
            return room_id
        logger.info(f"Creating new room with model {model} for request {request_id}")
        try:
            conversation = await self.conversation_db.create_conversation(
                user_id=session.user_id, model=model, name=DEFAULT_ROOM_NAME
            )
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to create chat room: {exc}") from exc
        logger.info(f"Room {conversation.id} created for request {request_id}")
        return conversation.id

    async def persist_messages(
        self,
        room_id: int,
        user_turn: Turn,
        assistant_turn: Turn,
        full_content: str,
        session: Session,
        request_id: str,
    ) -> list[StoredMessage]:
        logger.debug(f"Persisting turn pair for request {request_id} in room {room_id}")
        content = self._settled_content(assistant_turn.id, full_content)
        rows = await self.message_db.upsert_messages(
            [
                MessageUpsert(
                    room_id=room_id,
                    user_id=session.user_id,
                    role=Roles.USER,
                    content=user_turn.content,
                    client_id=user_turn.id,
                ),
                MessageUpsert(
                    room_id=room_id,
                    user_id=session.user_id,
                    role=Roles.ASSISTANT,
                    content=content,
                    client_id=assistant_turn.id,
                ),
            ]
        )
        for turn, row in zip((user_turn, assistant_turn), rows):
            self._attach_database_id(turn.id, row.id)

        try:
            await self.conversation_db.update_conversation(room_id, name=user_turn.content[:ROOM_NAME_MAX_LENGTH])
        except Exception as exc:
            logger.warning(f"Room update failed for request {request_id}, but continuing: {exc}")

        logger.info(f"Persistence completed for request {request_id}")
        return rows

    async def update_by_client_id(
        self, room_id: int, client_id: str, content: str, role: Roles = Roles.ASSISTANT
    ) -> bool:
        row = await self.message_db.update_message_content_by_client_id(room_id, role, client_id, content)
        if row is None:
            logger.warning(f"No stored {role} message with client id {client_id} in room {room_id}")
            return False
        self._attach_database_id(client_id, row.id)
        return True

    async def update_by_database_id(self, database_id: int, content: str) -> bool:
        row = await self.message_db.update_message_content(database_id, content)
        if row is None:
            logger.warning(f"No stored message with id {database_id}")
            return False
        return True

    async def load_turns(self, room_id: int) -> list[Turn]:
        try:
            rows = await self.message_db.get_messages_by_room_id(room_id)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to load messages of room {room_id}: {exc}") from exc
        logger.debug(f"Loaded {len(rows)} message(s) of room {room_id}")
        return [turn_from_stored(row) for row in rows]

    def spawn(self, operation: Callable[[], Awaitable[Any]], label: str, request_id: str) -> asyncio.Task:
        """Run 'operation' in the background. Its failure is logged and discarded."""

        async def guarded() -> None:
            try:
                await operation()
            except Exception:
                logger.exception(f"{label} failed for request {request_id}")

        task = asyncio.create_task(guarded(), name=f"{label}:{request_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait until every detached write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _settled_content(self, message_id: str, fallback: str) -> str:
        # A regeneration may have replaced the answer after this write was scheduled.
        turn = self.turns.get(message_id) if self.turns is not None else None
        if turn is None or turn.state != TurnState.COMPLETED:
            return fallback
        return turn.content

    def _attach_database_id(self, client_id: str, database_id: int) -> None:
        if self.turns is not None:
            self.turns.attach_database_id(client_id, database_id)
