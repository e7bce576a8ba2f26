"""
Typewriter reveal of completed responses.

The completion endpoint returns the whole answer at once; 'AnimationDriver'
replays it into the turn list a few characters per tick so the user sees it
being written. The reveal clock is independent of the network: a reveal starts
only after the full text is known and cannot fail because of the transport.

Reveals are keyed by message id. Different messages animate concurrently; a
second reveal for the same message either joins the running one (same text) or
supersedes it (new text, e.g. after a regeneration).
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from chat_lifecycle.messages import Turn, TurnState
from chat_lifecycle.state.turn_list import TurnList

DEFAULT_TICK_S = 0.015
DEFAULT_CHUNK_SIZE = 3
MIN_TICK_S = 0.005


@dataclass(frozen=True)
class AnimationParams:
    tick_s: float
    chunk_size: int


def compute_animation_params(
    content: str,
    base_tick_s: float = DEFAULT_TICK_S,
    base_chunk_size: int = DEFAULT_CHUNK_SIZE,
    min_tick_s: float = MIN_TICK_S,
) -> AnimationParams:
    """Pick a cadence for 'content'.

    Long answers reveal in larger chunks so the total reveal time stays
    reasonable; the tick never drops below 'min_tick_s'.
    """
    length = len(content)
    if length <= 200:
        factor = 1
    elif length <= 1000:
        factor = 2
    elif length <= 3000:
        factor = 4
    else:
        factor = 8
    return AnimationParams(tick_s=max(min_tick_s, base_tick_s), chunk_size=max(1, base_chunk_size) * factor)


def next_reveal_index(content: str, index: int, chunk_size: int) -> int:
    """End of the next revealed prefix. A run of whitespace is revealed in one step."""
    if index >= len(content):
        return len(content)
    if content[index].isspace():
        while index < len(content) and content[index].isspace():
            index += 1
        return index
    return min(len(content), index + chunk_size)


@dataclass
class _RevealJob:
    target: str
    task: asyncio.Task


class AnimationDriver:
    """
    Writes optimistic turns and reveal progress into a 'TurnList'.

    Attributes:
        turns: The shared UI turn list.
        tick_s: Base delay between two reveal steps.
        chunk_size: Base number of characters revealed per step.
        min_tick_s: Lower bound for the delay, whatever the content length.
    """

    def __init__(
        self,
        turns: TurnList,
        tick_s: float = DEFAULT_TICK_S,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        min_tick_s: float = MIN_TICK_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.turns = turns
        self.tick_s = tick_s
        self.chunk_size = chunk_size
        self.min_tick_s = min_tick_s
        self._sleep = sleep
        self._jobs: dict[str, _RevealJob] = {}

    def update_ui_state(self, user_turn: Turn, assistant_turn: Turn, request_id: str) -> None:
        """Optimistically insert a turn pair and raise the typing indicator."""
        self.turns.append(user_turn, assistant_turn)
        self.turns.transition(assistant_turn.id, TurnState.LOADING)
        self.turns.set_typing(True)
        logger.bind(request_id=request_id).debug(
            f"Inserted user turn {user_turn.id} and assistant placeholder {assistant_turn.id}"
        )

    def is_animating(self, message_id: str) -> bool:
        return message_id in self._jobs

    def animate_response(self, full_content: str, message_id: str, request_id: str) -> asyncio.Task:
        """Start (or join) the reveal of 'full_content' into turn 'message_id'.

        The turn moves to STREAMING with empty content before this returns, and
        to COMPLETED when the returned task finishes.
        """
        log = logger.bind(request_id=request_id)
        job = self._jobs.get(message_id)
        if job is not None:
            if job.target == full_content:
                log.debug(f"Reveal for {message_id} already running, joining it")
                return job.task
            log.debug(f"Superseding running reveal for {message_id}")
            job.task.cancel()
            del self._jobs[message_id]

        self.turns.transition(
            message_id, TurnState.STREAMING, content="", error=None
        )
        params = compute_animation_params(full_content, self.tick_s, self.chunk_size, self.min_tick_s)
        task = asyncio.create_task(self._reveal(message_id, full_content, params), name=f"reveal:{message_id}")
        self._jobs[message_id] = _RevealJob(target=full_content, task=task)
        log.debug(
            f"Revealing {len(full_content)} chars into {message_id} "
            f"(tick {params.tick_s:.3f}s, chunk {params.chunk_size})"
        )
        return task

    async def wait_for(self, task: asyncio.Task) -> bool:
        """Wait for a reveal task. Returns False when it was superseded or cancelled.

        Errors raised by the reveal itself propagate; cancellation of the caller
        propagates too.
        """
        await asyncio.wait({task})
        if task.cancelled():
            return False
        task.result()
        return True

    def cancel(self, message_id: str) -> bool:
        """Stop the running reveal of 'message_id', if any. The turn keeps its current content."""
        job = self._jobs.pop(message_id, None)
        if job is None:
            return False
        job.task.cancel()
        logger.debug(f"Cancelled running reveal for {message_id}")
        return True

    def clear_typing_state(self) -> None:
        self.turns.set_typing(False)

    def cancel_all(self) -> None:
        for job in self._jobs.values():
            job.task.cancel()
        if self._jobs:
            logger.debug(f"Cancelled {len(self._jobs)} running reveal(s)")
        self._jobs.clear()

    async def _reveal(self, message_id: str, content: str, params: AnimationParams) -> None:
        index = 0
        try:
            while index < len(content):
                await self._sleep(params.tick_s)
                index = next_reveal_index(content, index, params.chunk_size)
                if self.turns.transition(message_id, TurnState.STREAMING, content=content[:index]) is None:
                    logger.debug(f"Turn {message_id} left the list during its reveal")
                    return
            self.turns.transition(message_id, TurnState.COMPLETED, content=content)
        finally:
            job = self._jobs.get(message_id)
            if job is not None and job.task is asyncio.current_task():
                del self._jobs[message_id]
