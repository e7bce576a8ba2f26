"""
Conversation-scoped model selection.

Every room remembers its own model. The selection lives in an injected
'KeyValueStore' (so the presentation layer can subscribe to the room it shows)
and is written through to the 'model' column of the conversation record. The
"current" model is what a new, not-yet-created room will be provisioned with.
"""

from collections.abc import Callable

from loguru import logger

from chat_lifecycle.conversation_database.data_models.conversation import ConversationDatabase
from chat_lifecycle.errors import PersistenceError
from chat_lifecycle.models import is_known_model
from chat_lifecycle.state.model_store import KeyValueStore

CURRENT_MODEL_KEY = "current"


def room_key(room_id: int) -> str:
    return f"room:{room_id}"


class ModelSelectionService:
    def __init__(
        self,
        store: KeyValueStore[str, str],
        conversation_db: ConversationDatabase,
        default_model: str,
    ) -> None:
        self.store = store
        self.conversation_db = conversation_db
        self.default_model = default_model

    def get_current_model(self) -> str:
        return self.store.get(CURRENT_MODEL_KEY) or self.default_model

    def set_current_model(self, model: str) -> None:
        self._check_model(model)
        self.store.set(CURRENT_MODEL_KEY, model)

    async def get_model_for_room(self, room_id: int | None) -> str:
        """Model of 'room_id': cached selection, then the stored record, then the current model."""
        if room_id is None:
            return self.get_current_model()
        cached = self.store.get(room_key(room_id))
        if cached:
            return cached
        try:
            conversation = await self.conversation_db.get_conversation_by_id(room_id)
        except Exception as exc:
            logger.warning(f"Could not load model of room {room_id}, using current model: {exc}")
            return self.get_current_model()
        if conversation is None or not conversation.model:
            return self.get_current_model()
        self.store.set(room_key(room_id), conversation.model)
        return conversation.model

    async def set_model_for_room(self, room_id: int, model: str) -> None:
        """Select 'model' for 'room_id' and persist it. The selection is reverted if the write fails."""
        self._check_model(model)
        key = room_key(room_id)
        previous = self.store.get(key)
        self.store.set(key, model)
        try:
            await self.conversation_db.update_conversation(room_id, model=model)
        except Exception as exc:
            if previous is None:
                self.store.delete(key)
            else:
                self.store.set(key, previous)
            raise PersistenceError(f"Failed to save model for room {room_id}: {exc}") from exc
        logger.info(f"Model for room {room_id} set to {model}")

    def subscribe_room(self, room_id: int, callback: Callable[[str | None], None]) -> Callable[[], None]:
        return self.store.subscribe(room_key(room_id), callback)

    def _check_model(self, model: str) -> None:
        if not is_known_model(model):
            raise ValueError(f"Unknown model: {model}")
