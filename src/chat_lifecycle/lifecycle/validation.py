"""
Request validation and turn skeleton construction.

'RequestValidator' is the first step of every send: it checks the
preconditions and materializes the user turn and the assistant placeholder,
each with its own client id. Nothing here touches shared state, so a failed
validation leaves the turn list exactly as it was.
"""

from collections.abc import Callable

from pydantic import BaseModel

from chat_lifecycle.auth.base import Session
from chat_lifecycle.errors import RequestValidationError, TargetNotFoundError
from chat_lifecycle.messages import Roles, Turn, TurnPayload, TurnState
from chat_lifecycle.models import supports_search
from chat_lifecycle.utils.database import generate_message_id


class ValidatedSend(BaseModel):
    """A send that passed validation, ready for the optimistic UI update."""

    user_turn: Turn
    assistant_turn: Turn
    room_id: int | None
    history: list[TurnPayload]
    model: str
    is_search_mode: bool
    session: Session


class RequestValidator:
    def __init__(self, search_capable: Callable[[str], bool] = supports_search) -> None:
        self.search_capable = search_capable

    def validate_send(
        self,
        user_content: str,
        room_id: int | None,
        history: list[Turn],
        model: str | None,
        is_search_mode: bool,
        session: Session | None,
        message_id: str | None = None,
    ) -> ValidatedSend:
        """Check a send and build its turn pair.

        The returned history is the prompt for the completion call: the prior
        turns followed by the new user turn. 'message_id' lets the caller fix the
        assistant turn's client id in advance.
        """
        content = (user_content or "").strip()
        if not content:
            raise RequestValidationError("Message content is empty")
        if session is None:
            raise RequestValidationError("No authenticated session")
        if not model:
            raise RequestValidationError("No model selected")
        if is_search_mode and not self.search_capable(model):
            raise RequestValidationError(f"Model {model} does not support search mode")

        user_turn = Turn(id=generate_message_id(), role=Roles.USER, content=content, state=TurnState.COMPLETED)
        assistant_turn = Turn(id=message_id or generate_message_id(), role=Roles.ASSISTANT)
        prompt = [turn.to_payload() for turn in history]
        prompt.append(user_turn.to_payload())

        return ValidatedSend(
            user_turn=user_turn,
            assistant_turn=assistant_turn,
            room_id=room_id,
            history=prompt,
            model=model,
            is_search_mode=is_search_mode,
            session=session,
        )

    def validate_regeneration(self, target_id: str, history: list[Turn], session: Session | None) -> int:
        """Return the position of the assistant turn to regenerate."""
        index = next((i for i, turn in enumerate(history) if turn.id == target_id), -1)
        if index < 0:
            raise TargetNotFoundError(target_id)
        if session is None:
            raise RequestValidationError("No authenticated session")
        if history[index].role != Roles.ASSISTANT:
            raise RequestValidationError(f"Message {target_id} is not an assistant message")
        return index
