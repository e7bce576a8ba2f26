"""
Turn data models shared by every lifecycle component.

'Turn' is the UI-visible message: it carries the client id the conversation was
built with, the lifecycle state the presentation layer renders, and, once the
turn has been flushed to storage, the database id of its row. 'TurnPayload' is
the reduced form sent to the completion endpoint; only role, content and id
survive so UI-only fields can never leak into a prompt.

State machine:

    PENDING -> LOADING -> STREAMING -> COMPLETED
                  \\          \\
                   `-> ERROR  `-> ERROR

Leaving COMPLETED or ERROR requires an explicit regeneration, which moves the
turn back to LOADING.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from chat_lifecycle.utils.time import get_current_timestamp


class Roles(StrEnum):
    """Conversation roles as used by the OpenAI chat completions API."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TurnState(StrEnum):
    PENDING = "pending"
    LOADING = "loading"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


_FORWARD_ORDER = {
    TurnState.PENDING: 0,
    TurnState.LOADING: 1,
    TurnState.STREAMING: 2,
    TurnState.COMPLETED: 3,
}


def is_valid_transition(current: TurnState, target: TurnState, regenerate: bool = False) -> bool:
    """Return True if a turn may move from 'current' to 'target'.

    'regenerate' marks an explicit regeneration, the only way back to LOADING
    from a finished turn.
    """
    if regenerate:
        return target == TurnState.LOADING
    if target == TurnState.ERROR:
        return current in (TurnState.LOADING, TurnState.STREAMING)
    if current == TurnState.ERROR:
        return False
    if current == target:
        return current == TurnState.STREAMING
    return _FORWARD_ORDER[target] > _FORWARD_ORDER[current]


class TurnPayload(BaseModel):
    """The prompt-relevant subset of a turn."""

    role: Roles
    content: str
    id: str | None = None


class Turn(BaseModel):
    """
    A single message as seen by the user.

    'id' is the client id and the key of the turn in the UI list. Turns loaded
    from storage without a client id use 'db:<database_id>' as their key.
    'database_id' is None until the row has been written.
    """

    id: str
    role: Roles
    content: str = ""
    state: TurnState = TurnState.PENDING
    timestamp: int = Field(default_factory=get_current_timestamp)
    database_id: int | None = None
    error: str | None = None
    citations: list[Any] | None = None
    time_warning: str | None = None

    def to_payload(self) -> TurnPayload:
        return TurnPayload(role=self.role, content=self.content or "", id=self.id)

    @property
    def is_persisted(self) -> bool:
        return self.database_id is not None
