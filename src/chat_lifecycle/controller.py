"""
Chat controller (Facade).

'ChatController' is the single entry point for one conversation view. It owns
the 'TurnList' the user sees, the id of the room being shown and the model
selection, and wires the lifecycle components around them:

    'send'        - new user turn through 'MessageOrchestrator'
    'regenerate'  - rerun an assistant turn through 'RegenerationTracker'
    'load_room'   - replace the view with the stored history of another room
    'set_model'   - change the model of the current (or the next new) room

Persistence triggered by 'send' and 'regenerate' runs in the background; call
'close' to wait for it before shutting down.
"""

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from chat_lifecycle.auth.base import SessionProvider
from chat_lifecycle.completion.base import CompletionClient
from chat_lifecycle.config import LifecycleSettings
from chat_lifecycle.conversation_database.data_models.conversation import ConversationDatabase
from chat_lifecycle.conversation_database.data_models.message import MessageDatabase
from chat_lifecycle.lifecycle.animation import MIN_TICK_S, AnimationDriver
from chat_lifecycle.lifecycle.orchestrator import MessageOrchestrator, SendRequest, SendResult
from chat_lifecycle.lifecycle.persistence import PersistenceGateway
from chat_lifecycle.lifecycle.regeneration import RegenerationTracker
from chat_lifecycle.lifecycle.validation import RequestValidator
from chat_lifecycle.messages import Turn
from chat_lifecycle.model_selection import ModelSelectionService, room_key
from chat_lifecycle.state.model_store import KeyValueStore
from chat_lifecycle.state.turn_list import TurnList
from chat_lifecycle.utils.retry import RetryPolicy


class ChatController:
    def __init__(
        self,
        completion_client: CompletionClient,
        session_provider: SessionProvider,
        conversation_db: ConversationDatabase,
        message_db: MessageDatabase,
        settings: LifecycleSettings | None = None,
        model_store: KeyValueStore[str, str] | None = None,
        room_id: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or LifecycleSettings()
        self.room_id = room_id
        self.turns = TurnList()
        self.models = ModelSelectionService(
            model_store if model_store is not None else KeyValueStore(),
            conversation_db,
            self.settings.default_model,
        )

        self.persistence = PersistenceGateway(conversation_db, message_db, self.turns)
        self.animation = AnimationDriver(
            self.turns,
            tick_s=self.settings.typing_tick_s,
            chunk_size=self.settings.typing_chunk_size,
            min_tick_s=min(MIN_TICK_S, self.settings.typing_tick_s),
            sleep=sleep,
        )
        retry_policy = RetryPolicy(
            max_retries=self.settings.send_max_retries,
            base_delay=self.settings.retry_delay_s,
            exponential_backoff=self.settings.retry_exponential,
            sleep=sleep,
        )
        validator = RequestValidator()

        self.orchestrator = MessageOrchestrator(
            self.turns, completion_client, session_provider, self.animation, self.persistence, retry_policy, validator
        )
        self.regeneration = RegenerationTracker(
            self.turns, completion_client, session_provider, self.animation, self.persistence, retry_policy, validator
        )

    async def current_model(self) -> str:
        return await self.models.get_model_for_room(self.room_id)

    async def send(self, text: str, is_search_mode: bool = False) -> SendResult:
        model = await self.current_model()
        result = await self.orchestrator.send_message(
            SendRequest(
                user_content=text,
                history=self.turns.snapshot(),
                model=model,
                is_search_mode=is_search_mode,
            ),
            self.room_id,
        )
        if self.room_id is None and result.room_id is not None:
            self.room_id = result.room_id
            self.models.store.set(room_key(result.room_id), model)
            logger.info(f"Now in room {result.room_id}")
        return result

    async def regenerate(
        self,
        message_id: str,
        override_user_content: str | None = None,
        is_search_mode: bool = False,
    ) -> bool:
        target = self.turns.get(message_id)
        model = await self.current_model()
        try:
            return await self.regeneration.regenerate_message(
                message_id,
                self.turns.snapshot(),
                override_user_content,
                target.content if target else None,
                room_id=self.room_id,
                model=model,
                is_search_mode=is_search_mode,
            )
        except Exception as exc:
            logger.error(f"Regeneration of {message_id} failed: {exc}")
            raise

    def is_regenerating(self, message_id: str) -> bool:
        return self.regeneration.is_regenerating(message_id)

    async def load_room(self, room_id: int) -> list[Turn]:
        self.animation.cancel_all()
        turns = await self.persistence.load_turns(room_id)
        self.turns.replace_all(turns)
        self.room_id = room_id
        model = await self.models.get_model_for_room(room_id)
        logger.info(f"Loaded room {room_id} with {len(turns)} message(s), model {model}")
        return turns

    def new_room(self) -> None:
        self.animation.cancel_all()
        self.turns.replace_all([])
        self.room_id = None

    async def set_model(self, model: str) -> None:
        if self.room_id is None:
            self.models.set_current_model(model)
        else:
            await self.models.set_model_for_room(self.room_id, model)

    async def close(self) -> None:
        await self.persistence.drain()
        self.animation.cancel_all()
