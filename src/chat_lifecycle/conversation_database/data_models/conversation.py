"""
Conversation (chat room) data model and storage interface.

A conversation row owns the model selected for it: model selection is
persisted here, independently of message writes, so switching the model never
waits on (or blocks) the message flow.

The 'ConversationDatabase' ABC is the pluggable storage backend. Concrete
implementations: 'InMemoryConversationDatabase', 'PostgRESTConversationDatabase'.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class Conversation(BaseModel):
    """A chat room owned by a user."""

    id: int
    user_id: str
    model: str
    name: str
    create_timestamp: int
    update_timestamp: int


class ConversationDatabase(ABC):
    """Abstract repository for 'Conversation' records."""

    @abstractmethod
    async def create_conversation(self, user_id: str, model: str, name: str) -> Conversation:
        pass

    @abstractmethod
    async def get_conversation_by_id(self, conversation_id: int) -> Conversation | None:
        pass

    @abstractmethod
    async def update_conversation(
        self,
        conversation_id: int,
        name: str | None = None,
        model: str | None = None,
    ) -> Conversation:
        """Apply the given fields and bump 'update_timestamp'. Raise 'KeyError' for unknown ids."""
        pass
