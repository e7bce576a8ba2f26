import asyncio
from collections.abc import Callable

import pytest
from loguru import logger

from chat_lifecycle.auth.base import Session, StaticSessionProvider
from chat_lifecycle.completion.base import CompletionClient, CompletionRequest, NormalizedResponse
from chat_lifecycle.config import LifecycleSettings
from chat_lifecycle.conversation_database.in_memory import InMemoryConversationDatabase, InMemoryMessageDatabase
from chat_lifecycle.errors import PersistenceError
from chat_lifecycle.lifecycle.animation import AnimationDriver
from chat_lifecycle.lifecycle.persistence import PersistenceGateway
from chat_lifecycle.state.turn_list import TurnList
from chat_lifecycle.utils.retry import RetryPolicy


async def no_sleep(_delay: float) -> None:
    await asyncio.sleep(0)


class FakeCompletionClient(CompletionClient):
    """Plays back a script of outcomes: a string is an answer, an exception is raised.

    The last outcome repeats once the script is exhausted. When 'gate' is set,
    every call waits for it before answering.
    """

    def __init__(self, *outcomes: str | Exception | NormalizedResponse, gate: asyncio.Event | None = None) -> None:
        self.outcomes = list(outcomes) or ["Hi there!"]
        self.gate = gate
        self.calls: list[tuple[CompletionRequest, str, bool]] = []
        self.started = asyncio.Event()

    async def complete(
        self,
        request: CompletionRequest,
        access_token: str,
        is_search_mode: bool = False,
    ) -> NormalizedResponse:
        self.calls.append((request, access_token, is_search_mode))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, NormalizedResponse):
            return outcome
        return NormalizedResponse(content=outcome, model=request.model)


class FailingMessageDatabase(InMemoryMessageDatabase):
    def __init__(self) -> None:
        super().__init__()
        self.upsert_attempts = 0

    async def upsert_messages(self, messages):
        self.upsert_attempts += 1
        raise PersistenceError("messages table is unavailable")


class FailingConversationDatabase(InMemoryConversationDatabase):
    def __init__(self, fail_create: bool = True, fail_update: bool = True) -> None:
        super().__init__()
        self.fail_create = fail_create
        self.fail_update = fail_update

    async def create_conversation(self, user_id, model, name):
        if self.fail_create:
            raise PersistenceError("chatrooms table is unavailable")
        return await super().create_conversation(user_id, model, name)

    async def update_conversation(self, conversation_id, name=None, model=None):
        if self.fail_update:
            raise PersistenceError("chatrooms table is unavailable")
        return await super().update_conversation(conversation_id, name=name, model=model)


@pytest.fixture
def session() -> Session:
    return Session(access_token="token-1", user_id="user-1")


@pytest.fixture
def session_provider(session) -> StaticSessionProvider:
    return StaticSessionProvider(session)


@pytest.fixture
def settings() -> LifecycleSettings:
    return LifecycleSettings(retry_delay_s=0.0, typing_tick_s=0.0, typing_chunk_size=3)


@pytest.fixture
def turns() -> TurnList:
    return TurnList()


@pytest.fixture
def conversation_db() -> InMemoryConversationDatabase:
    return InMemoryConversationDatabase()


@pytest.fixture
def message_db() -> InMemoryMessageDatabase:
    return InMemoryMessageDatabase()


@pytest.fixture
def animation(turns) -> AnimationDriver:
    return AnimationDriver(turns, tick_s=0.0, chunk_size=3, min_tick_s=0.0, sleep=no_sleep)


@pytest.fixture
def persistence(conversation_db, message_db, turns) -> PersistenceGateway:
    return PersistenceGateway(conversation_db, message_db, turns)


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=3, base_delay=0.0, sleep=no_sleep)


@pytest.fixture
def log_records() -> list[dict]:
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


def states_of(events: list, message_id: str) -> list[str]:
    """Distinct consecutive states a turn went through, as seen by a subscriber."""
    seen: list[str] = []
    for event in events:
        for turn in event.turns:
            if turn.id == message_id and (not seen or seen[-1] != turn.state):
                seen.append(turn.state)
    return seen


@pytest.fixture
def recorded_events(turns) -> list:
    events: list = []
    unsubscribe: Callable[[], None] = turns.subscribe(events.append)
    yield events
    unsubscribe()
