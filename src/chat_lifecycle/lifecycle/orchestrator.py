"""
Send flow for a new user turn.

'MessageOrchestrator.send_message' runs the steps of one send in order:

    1. validate            - RequestValidator builds the user/assistant turn pair
    2. optimistic insert   - both turns appear in the list, assistant LOADING
    3. provision room      - a new conversation is created when there is none
    4. completion call     - through RetryPolicy, same client message id every attempt
    5. response check      - the transport has already reduced the body to content
    6. reveal              - AnimationDriver types the answer into the assistant turn
    7. persist (detached)  - PersistenceGateway upserts the pair in the background

Failures never raise out of 'send_message' for the expected error types; they
come back as a 'SendResult' with a 'FailureReason', and the assistant turn (if
it was created) is left in ERROR with the error text. The typing indicator is
cleared on every exit path.
"""

import time
from enum import StrEnum

from loguru import logger
from pydantic import BaseModel, Field

from chat_lifecycle.auth.base import Session, SessionProvider, resolve_access_token
from chat_lifecycle.completion.base import CompletionClient, CompletionRequest
from chat_lifecycle.errors import (
    CompletionRejectedError,
    InvalidStateTransition,
    LifecycleError,
    NetworkError,
    PersistenceError,
    RequestValidationError,
    ResponseFormatError,
)
from chat_lifecycle.lifecycle.animation import AnimationDriver
from chat_lifecycle.lifecycle.persistence import PersistenceGateway
from chat_lifecycle.lifecycle.validation import RequestValidator
from chat_lifecycle.messages import Turn, TurnState
from chat_lifecycle.state.turn_list import TurnList
from chat_lifecycle.utils.database import generate_request_id
from chat_lifecycle.utils.retry import RetryPolicy


class FailureReason(StrEnum):
    VALIDATION = "validation"
    PROVISIONING = "provisioning"
    NETWORK = "network"
    REJECTED = "rejected"
    RESPONSE_FORMAT = "response_format"


_FAILURE_REASONS: list[tuple[type[LifecycleError], FailureReason]] = [
    (RequestValidationError, FailureReason.VALIDATION),
    (PersistenceError, FailureReason.PROVISIONING),
    (NetworkError, FailureReason.NETWORK),
    (CompletionRejectedError, FailureReason.REJECTED),
    (ResponseFormatError, FailureReason.RESPONSE_FORMAT),
]


class SendRequest(BaseModel):
    user_content: str
    history: list[Turn] = Field(default_factory=list)
    model: str | None
    is_search_mode: bool = False
    message_id: str | None = None


class SendResult(BaseModel):
    success: bool
    room_id: int | None = None
    reason: FailureReason | None = None
    error: str | None = None
    duration: float = 0.0
    is_new_room: bool = False


class MessageOrchestrator:
    def __init__(
        self,
        turns: TurnList,
        completion_client: CompletionClient,
        session_provider: SessionProvider,
        animation: AnimationDriver,
        persistence: PersistenceGateway,
        retry_policy: RetryPolicy | None = None,
        validator: RequestValidator | None = None,
    ) -> None:
        self.turns = turns
        self.completion_client = completion_client
        self.session_provider = session_provider
        self.animation = animation
        self.persistence = persistence
        self.retry_policy = retry_policy or RetryPolicy()
        self.validator = validator or RequestValidator()

    async def send_message(self, request: SendRequest, room_id: int | None, session: Session | None = None) -> SendResult:
        request_id = generate_request_id()
        started = time.monotonic()
        assistant_id: str | None = None
        resolved_room = room_id

        with logger.contextualize(request_id=request_id):
            try:
                if session is None:
                    session = await self.session_provider.get_session()
                validated = self.validator.validate_send(
                    request.user_content,
                    room_id,
                    request.history,
                    request.model,
                    request.is_search_mode,
                    session,
                    message_id=request.message_id,
                )
                logger.info(
                    f"Sending message with model {validated.model} "
                    f"({'search' if validated.is_search_mode else 'chat'} mode, room {room_id})"
                )

                self.animation.update_ui_state(validated.user_turn, validated.assistant_turn, request_id)
                assistant_id = validated.assistant_turn.id

                resolved_room = await self.persistence.create_room_if_needed(
                    room_id, validated.session, validated.model, request_id
                )

                access_token = await resolve_access_token(self.session_provider, validated.session)
                completion_request = CompletionRequest(
                    room_id=resolved_room,
                    messages=validated.history,
                    model=validated.model,
                    client_message_id=assistant_id,
                    skip_persistence=True,
                )
                response = await self.retry_policy.retry_operation(
                    lambda: self.completion_client.complete(
                        completion_request, access_token, validated.is_search_mode
                    ),
                    "Completion request",
                )

                self.turns.update(assistant_id, citations=response.citations, time_warning=response.time_warning)
                await self.animation.wait_for(
                    self.animation.animate_response(response.content, assistant_id, request_id)
                )

                persisted_room = resolved_room
                self.persistence.spawn(
                    lambda: self.persistence.persist_messages(
                        persisted_room,
                        validated.user_turn,
                        validated.assistant_turn,
                        response.content,
                        validated.session,
                        request_id,
                    ),
                    "Message persistence",
                    request_id,
                )

                duration = time.monotonic() - started
                logger.info(f"Message sent in {duration:.2f}s (room {resolved_room})")
                return SendResult(
                    success=True,
                    room_id=resolved_room,
                    duration=duration,
                    is_new_room=room_id is None,
                )
            except LifecycleError as exc:
                reason = _failure_reason(exc)
                if reason is None:
                    self._mark_error(assistant_id, exc)
                    raise
                logger.error(f"Send failed ({reason}): {exc}")
                self._mark_error(assistant_id, exc)
                return SendResult(
                    success=False,
                    room_id=resolved_room,
                    reason=reason,
                    error=str(exc),
                    duration=time.monotonic() - started,
                    is_new_room=room_id is None and resolved_room is not None,
                )
            except Exception as exc:
                logger.exception("Unexpected error while sending message")
                self._mark_error(assistant_id, exc)
                raise
            finally:
                self.animation.clear_typing_state()

    def _mark_error(self, assistant_id: str | None, exc: BaseException) -> None:
        if assistant_id is None:
            return
        try:
            self.turns.transition(assistant_id, TurnState.ERROR, error=str(exc) or type(exc).__name__)
        except InvalidStateTransition:
            logger.debug(f"Assistant turn {assistant_id} could not be marked as failed from its current state")


def _failure_reason(exc: LifecycleError) -> FailureReason | None:
    for error_type, reason in _FAILURE_REASONS:
        if isinstance(exc, error_type):
            return reason
    return None
