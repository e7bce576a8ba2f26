"""
Regeneration of an existing assistant turn.

A regeneration re-asks the completion endpoint for one assistant turn using
only the history that precedes it, reveals the new answer in place and
writes it back. A turn without a database id is stored through the same upsert
as a send, so a pair whose original send never reached storage is created. The
turn keeps its client id, which doubles as the completion idempotency key, so
any number of regenerations of the same turn converge on a single stored row.
A reveal still running for the turn is cancelled first.

At most one regeneration per message runs at a time. A request for a message
that is already being regenerated returns False without doing anything.
"""

from loguru import logger

from chat_lifecycle.auth.base import Session, SessionProvider, resolve_access_token
from chat_lifecycle.completion.base import CompletionClient, CompletionRequest
from chat_lifecycle.errors import InvalidStateTransition
from chat_lifecycle.lifecycle.animation import AnimationDriver
from chat_lifecycle.lifecycle.persistence import PersistenceGateway
from chat_lifecycle.lifecycle.validation import RequestValidator
from chat_lifecycle.messages import Roles, Turn, TurnPayload, TurnState
from chat_lifecycle.state.turn_list import TurnList
from chat_lifecycle.utils.database import generate_request_id
from chat_lifecycle.utils.retry import RetryPolicy


class InFlightSet:
    """Keys currently being worked on. 'try_acquire' checks and marks in one step."""

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def try_acquire(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: str) -> None:
        self._keys.discard(key)


class RegenerationTracker:
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
        self.in_flight = InFlightSet()

    def is_regenerating(self, message_id: str) -> bool:
        return message_id in self.in_flight

    async def regenerate_message(
        self,
        target_id: str,
        current_history: list[Turn],
        user_override_content: str | None = None,
        original_content: str | None = None,
        *,
        room_id: int | None,
        model: str,
        is_search_mode: bool = False,
    ) -> bool:
        """Regenerate assistant turn 'target_id'.

        Returns True when the new answer was revealed, False when a
        regeneration of the same turn was already running. Any failure leaves
        the turn in ERROR and is re-raised.
        """
        session = await self.session_provider.get_session()
        index = self.validator.validate_regeneration(target_id, current_history, session)

        if not self.in_flight.try_acquire(target_id):
            logger.debug(f"Regeneration of {target_id} already in flight, ignoring")
            return False

        request_id = generate_request_id()
        with logger.contextualize(request_id=request_id):
            try:
                logger.info(f"Regenerating {target_id} with model {model}")
                if original_content is not None:
                    logger.debug(f"Replacing {len(original_content)} chars of previous content")
                self.animation.cancel(target_id)
                self.turns.transition(target_id, TurnState.LOADING, regenerate=True, error=None)

                history = [turn.to_payload() for turn in current_history[:index]]
                override = self._apply_override(current_history, index, history, user_override_content)

                access_token = await resolve_access_token(self.session_provider, session)
                request = CompletionRequest(
                    room_id=room_id,
                    messages=history,
                    model=model,
                    client_message_id=target_id,
                    skip_persistence=True,
                )
                response = await self.retry_policy.retry_operation(
                    lambda: self.completion_client.complete(request, access_token, is_search_mode),
                    f"Regeneration of {target_id}",
                )

                self.turns.update(target_id, citations=response.citations, time_warning=response.time_warning)
                await self.animation.wait_for(self.animation.animate_response(response.content, target_id, request_id))

                target = self.turns.get(target_id) or current_history[index]
                user_turn = self._preceding_user_turn(current_history, index)
                self._persist(target, user_turn, override, response.content, room_id, session, request_id)
                logger.info(f"Regeneration of {target_id} completed")
                return True
            except Exception as exc:
                self._mark_error(target_id, exc)
                raise
            finally:
                self.in_flight.release(target_id)

    def _apply_override(
        self,
        current_history: list[Turn],
        index: int,
        history: list[TurnPayload],
        user_override_content: str | None,
    ) -> str | None:
        if not (user_override_content or "").strip() or index == 0:
            return None
        preceding = current_history[index - 1]
        if preceding.role != Roles.USER:
            logger.debug(f"Turn before {current_history[index].id} is not a user turn, ignoring override")
            return None
        if user_override_content == preceding.content:
            return None
        history[-1] = history[-1].model_copy(update={"content": user_override_content})
        return user_override_content

    def _preceding_user_turn(self, current_history: list[Turn], index: int) -> Turn | None:
        if index == 0 or current_history[index - 1].role != Roles.USER:
            return None
        preceding = current_history[index - 1]
        return self.turns.get(preceding.id) or preceding

    def _persist(
        self,
        target: Turn,
        user_turn: Turn | None,
        override: str | None,
        content: str,
        room_id: int | None,
        session: Session,
        request_id: str,
    ) -> None:
        if target.database_id is not None:
            database_id = target.database_id
            self.persistence.spawn(
                lambda: self.persistence.update_by_database_id(database_id, content),
                "Regeneration persistence",
                request_id,
            )
            if user_turn is not None and user_turn.database_id is not None and override is not None:
                user_database_id = user_turn.database_id
                self.persistence.spawn(
                    lambda: self.persistence.update_by_database_id(user_database_id, override),
                    "Edited user message persistence",
                    request_id,
                )
        elif room_id is None:
            logger.debug(f"No room yet, regenerated turn {target.id} stays in memory")
        elif user_turn is None:
            self.persistence.spawn(
                lambda: self.persistence.update_by_client_id(room_id, target.id, content),
                "Regeneration persistence",
                request_id,
            )
        else:
            # The pair may never have been stored, e.g. when the original send failed.
            if override is not None:
                user_turn = user_turn.model_copy(update={"content": override})
            self.persistence.spawn(
                lambda: self.persistence.persist_messages(room_id, user_turn, target, content, session, request_id),
                "Regeneration persistence",
                request_id,
            )

    def _mark_error(self, target_id: str, exc: Exception) -> None:
        logger.error(f"Regeneration of {target_id} failed: {exc}")
        try:
            self.turns.transition(target_id, TurnState.ERROR, error=str(exc) or type(exc).__name__)
        except InvalidStateTransition:
            logger.debug(f"Turn {target_id} could not be marked as failed from its current state")
