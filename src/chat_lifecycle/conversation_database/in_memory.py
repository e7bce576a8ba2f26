"""
In-memory conversation and message repositories.

Used by the CLI when no store URL is configured and by the test-suite. The
message table enforces the same unique constraint as the durable store,
'(room_id, role, client_id)', so idempotency can be verified without a
database.
"""

from itertools import count

from chat_lifecycle.conversation_database.data_models.conversation import Conversation, ConversationDatabase
from chat_lifecycle.conversation_database.data_models.message import MessageDatabase, MessageUpsert, StoredMessage
from chat_lifecycle.messages import Roles
from chat_lifecycle.utils.time import get_current_timestamp


class InMemoryConversationDatabase(ConversationDatabase):
    def __init__(self) -> None:
        self._conversations: dict[int, Conversation] = {}
        self._ids = count(1)

    async def create_conversation(self, user_id: str, model: str, name: str) -> Conversation:
        now = get_current_timestamp()
        conversation = Conversation(
            id=next(self._ids),
            user_id=user_id,
            model=model,
            name=name,
            create_timestamp=now,
            update_timestamp=now,
        )
        self._conversations[conversation.id] = conversation
        return conversation

    async def get_conversation_by_id(self, conversation_id: int) -> Conversation | None:
        return self._conversations.get(conversation_id)

    async def update_conversation(
        self,
        conversation_id: int,
        name: str | None = None,
        model: str | None = None,
    ) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Conversation {conversation_id} not found")
        changes: dict[str, object] = {"update_timestamp": get_current_timestamp()}
        if name is not None:
            changes["name"] = name
        if model is not None:
            changes["model"] = model
        updated = conversation.model_copy(update=changes)
        self._conversations[conversation_id] = updated
        return updated


class InMemoryMessageDatabase(MessageDatabase):
    def __init__(self) -> None:
        self._messages: dict[int, StoredMessage] = {}
        self._natural_keys: dict[tuple[int, Roles, str], int] = {}
        self._ids = count(1)

    def __len__(self) -> int:
        return len(self._messages)

    async def upsert_messages(self, messages: list[MessageUpsert]) -> list[StoredMessage]:
        stored: list[StoredMessage] = []
        for message in messages:
            now = get_current_timestamp()
            key = (message.room_id, message.role, message.client_id)
            existing_id = self._natural_keys.get(key)
            if existing_id is not None:
                row = self._messages[existing_id].model_copy(
                    update={"content": message.content, "user_id": message.user_id, "update_timestamp": now}
                )
            else:
                row = StoredMessage(
                    id=next(self._ids),
                    room_id=message.room_id,
                    user_id=message.user_id,
                    role=message.role,
                    content=message.content,
                    client_id=message.client_id,
                    create_timestamp=now,
                    update_timestamp=now,
                )
                self._natural_keys[key] = row.id
            self._messages[row.id] = row
            stored.append(row)
        return stored

    async def update_message_content(self, message_id: int, content: str) -> StoredMessage | None:
        row = self._messages.get(message_id)
        if row is None:
            return None
        updated = row.model_copy(update={"content": content, "update_timestamp": get_current_timestamp()})
        self._messages[message_id] = updated
        return updated

    async def update_message_content_by_client_id(
        self, room_id: int, role: Roles, client_id: str, content: str
    ) -> StoredMessage | None:
        message_id = self._natural_keys.get((room_id, role, client_id))
        if message_id is None:
            return None
        return await self.update_message_content(message_id, content)

    async def get_messages_by_room_id(self, room_id: int) -> list[StoredMessage]:
        return sorted((m for m in self._messages.values() if m.room_id == room_id), key=lambda m: m.id)
