"""
Durable storage for conversations and messages.

The lifecycle only talks to the 'ConversationDatabase' and 'MessageDatabase'
ABCs; pick 'InMemory*' for tests and local runs or 'PostgREST*' for a
Supabase-style backend.
"""

from chat_lifecycle.conversation_database.data_models.conversation import Conversation, ConversationDatabase
from chat_lifecycle.conversation_database.data_models.message import MessageDatabase, MessageUpsert, StoredMessage
from chat_lifecycle.conversation_database.in_memory import InMemoryConversationDatabase, InMemoryMessageDatabase
from chat_lifecycle.conversation_database.postgrest import (
    PostgRESTClient,
    PostgRESTConversationDatabase,
    PostgRESTMessageDatabase,
)

__all__ = [
    "Conversation",
    "ConversationDatabase",
    "InMemoryConversationDatabase",
    "InMemoryMessageDatabase",
    "MessageDatabase",
    "MessageUpsert",
    "PostgRESTClient",
    "PostgRESTConversationDatabase",
    "PostgRESTMessageDatabase",
    "StoredMessage",
]
