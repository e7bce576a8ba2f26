"""
The UI state sink: one ordered list of turns plus the typing indicator.

'TurnList' is the single source of truth for what the user sees. Lifecycle
components never hold references to turns they have inserted; they address
turns by id and the list replaces the stored model in place, so a reveal for one
message and a regeneration of another can interleave without stepping on each
other. Every mutation notifies subscribers with a snapshot, which is what a
rendering layer (or a test) observes.

State changes go through 'transition', which enforces the forward-only turn
lifecycle defined in 'chat_lifecycle.messages'.
"""

from collections.abc import Callable, Iterator
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict

from chat_lifecycle.errors import InvalidStateTransition
from chat_lifecycle.messages import Turn, TurnState, is_valid_transition


class TurnListEventKind(StrEnum):
    INSERTED = "inserted"
    UPDATED = "updated"
    REPLACED = "replaced"
    TYPING = "typing"


class TurnListEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: TurnListEventKind
    message_id: str | None
    turns: tuple[Turn, ...]
    typing: bool


TurnListListener = Callable[[TurnListEvent], None]


class TurnList:
    def __init__(self, turns: list[Turn] | None = None) -> None:
        self._turns: list[Turn] = list(turns or [])
        self._typing = False
        self._listeners: list[TurnListListener] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))

    @property
    def typing(self) -> bool:
        return self._typing

    def snapshot(self) -> list[Turn]:
        return list(self._turns)

    def index_of(self, message_id: str) -> int:
        for index, turn in enumerate(self._turns):
            if turn.id == message_id:
                return index
        return -1

    def get(self, message_id: str) -> Turn | None:
        index = self.index_of(message_id)
        return self._turns[index] if index >= 0 else None

    def subscribe(self, listener: TurnListListener) -> Callable[[], None]:
        """Register 'listener' for every mutation. Returns the matching unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def append(self, *turns: Turn) -> None:
        for turn in turns:
            if self.index_of(turn.id) >= 0:
                raise ValueError(f"Turn {turn.id!r} is already in the list")
        self._turns.extend(turns)
        for turn in turns:
            self._notify(TurnListEventKind.INSERTED, turn.id)

    def replace_all(self, turns: list[Turn]) -> None:
        self._turns = list(turns)
        self._notify(TurnListEventKind.REPLACED, None)

    def update(self, message_id: str, **changes: Any) -> Turn | None:
        """Replace fields of a turn other than its state. Returns None when the turn is gone."""
        if "state" in changes:
            raise ValueError("Use 'transition' to change a turn's state")
        return self._replace(message_id, changes)

    def transition(self, message_id: str, state: TurnState, regenerate: bool = False, **changes: Any) -> Turn | None:
        index = self.index_of(message_id)
        if index < 0:
            logger.debug(f"Ignoring transition to {state} for missing turn {message_id}")
            return None
        current = self._turns[index].state
        if not is_valid_transition(current, state, regenerate=regenerate):
            raise InvalidStateTransition(message_id, current, state)
        return self._replace(message_id, {**changes, "state": state})

    def attach_database_id(self, message_id: str, database_id: int) -> Turn | None:
        return self._replace(message_id, {"database_id": database_id})

    def set_typing(self, typing: bool) -> None:
        if self._typing == typing:
            return
        self._typing = typing
        self._notify(TurnListEventKind.TYPING, None)

    def _replace(self, message_id: str, changes: dict[str, Any]) -> Turn | None:
        index = self.index_of(message_id)
        if index < 0:
            logger.debug(f"Ignoring update for missing turn {message_id}")
            return None
        updated = self._turns[index].model_copy(update=changes)
        self._turns[index] = updated
        self._notify(TurnListEventKind.UPDATED, message_id)
        return updated

    def _notify(self, kind: TurnListEventKind, message_id: str | None) -> None:
        if not self._listeners:
            return
        event = TurnListEvent(kind=kind, message_id=message_id, turns=tuple(self._turns), typing=self._typing)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Turn list listener failed on {kind} event")
