"""
Stored message data model and storage interface.

Rows are keyed twice: by the database-assigned 'id', and by the natural key
'(room_id, role, client_id)' the client generated before the row existed.
'upsert_messages' writes on the natural key, so replaying a write after a retry
or a race overwrites the earlier row instead of adding a duplicate. Rows created
by older clients may have no 'client_id'; those can only be addressed by 'id'.

Concrete implementations: 'InMemoryMessageDatabase', 'PostgRESTMessageDatabase'.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from chat_lifecycle.messages import Roles


class MessageUpsert(BaseModel):
    """The fields a client writes; the store fills in id and timestamps."""

    room_id: int
    user_id: str | None
    role: Roles
    content: str
    client_id: str


class StoredMessage(BaseModel):
    id: int
    room_id: int
    user_id: str | None
    role: Roles
    content: str
    client_id: str | None = None
    create_timestamp: int
    update_timestamp: int


class MessageDatabase(ABC):
    """Abstract repository for 'StoredMessage' records."""

    @abstractmethod
    async def upsert_messages(self, messages: list[MessageUpsert]) -> list[StoredMessage]:
        """Insert or overwrite rows on '(room_id, role, client_id)'. Returns rows in input order."""
        pass

    @abstractmethod
    async def update_message_content(self, message_id: int, content: str) -> StoredMessage | None:
        pass

    @abstractmethod
    async def update_message_content_by_client_id(
        self, room_id: int, role: Roles, client_id: str, content: str
    ) -> StoredMessage | None:
        pass

    @abstractmethod
    async def get_messages_by_room_id(self, room_id: int) -> list[StoredMessage]:
        """All rows of a room ordered by 'id'."""
        pass
