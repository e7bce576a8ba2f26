import asyncio

import pytest
from conftest import states_of

from chat_lifecycle.lifecycle.animation import AnimationDriver, compute_animation_params, next_reveal_index
from chat_lifecycle.messages import Roles, Turn, TurnState


def seed(turns, turn_id="a1"):
    user = Turn(id="u1", role=Roles.USER, content="Hi", state=TurnState.COMPLETED)
    assistant = Turn(id=turn_id, role=Roles.ASSISTANT)
    return user, assistant


def test_whitespace_runs_are_revealed_in_one_step():
    content = "ab   cd"

    assert next_reveal_index(content, 0, 1) == 1
    assert next_reveal_index(content, 2, 1) == 5
    assert next_reveal_index(content, 5, 10) == len(content)
    assert next_reveal_index(content, len(content), 3) == len(content)


def test_animation_params_scale_with_length():
    short = compute_animation_params("x" * 50, base_tick_s=0.015, base_chunk_size=3)
    long = compute_animation_params("x" * 5000, base_tick_s=0.015, base_chunk_size=3)

    assert short.chunk_size == 3
    assert long.chunk_size > short.chunk_size
    assert compute_animation_params("x", base_tick_s=0.0, min_tick_s=0.005).tick_s == 0.005


def test_update_ui_state_inserts_pair_and_raises_typing(turns, animation):
    user, assistant = seed(turns)

    animation.update_ui_state(user, assistant, "req_1")

    assert [t.id for t in turns] == ["u1", "a1"]
    assert turns.get("a1").state == TurnState.LOADING
    assert turns.typing


@pytest.mark.asyncio
async def test_reveal_streams_prefixes_then_completes(turns, animation, recorded_events):
    user, assistant = seed(turns)
    animation.update_ui_state(user, assistant, "req_1")

    task = animation.animate_response("Hello world", "a1", "req_1")
    assert turns.get("a1").state == TurnState.STREAMING
    assert turns.get("a1").content == ""
    await task

    final = turns.get("a1")
    assert final.state == TurnState.COMPLETED
    assert final.content == "Hello world"
    contents = [e.turns[1].content for e in recorded_events if e.message_id == "a1"]
    assert contents == sorted(contents, key=len)
    assert all("Hello world".startswith(c) for c in contents)
    assert states_of(recorded_events, "a1") == [
        TurnState.PENDING,
        TurnState.LOADING,
        TurnState.STREAMING,
        TurnState.COMPLETED,
    ]
    assert not animation.is_animating("a1")


@pytest.mark.asyncio
async def test_same_content_joins_running_reveal(turns, animation):
    user, assistant = seed(turns)
    animation.update_ui_state(user, assistant, "req_1")

    first = animation.animate_response("Hello world", "a1", "req_1")
    second = animation.animate_response("Hello world", "a1", "req_1")

    assert first is second
    await first


@pytest.mark.asyncio
async def test_new_content_supersedes_running_reveal(turns, animation):
    user, assistant = seed(turns)
    animation.update_ui_state(user, assistant, "req_1")

    first = animation.animate_response("First answer that is long", "a1", "req_1")
    second = animation.animate_response("Second", "a1", "req_2")

    assert await animation.wait_for(first) is False
    assert await animation.wait_for(second) is True
    assert turns.get("a1").content == "Second"
    assert turns.get("a1").state == TurnState.COMPLETED


@pytest.mark.asyncio
async def test_reveals_for_different_messages_run_concurrently(turns, animation):
    animation.update_ui_state(*seed(turns, "a1"), "req_1")
    animation.update_ui_state(Turn(id="u2", role=Roles.USER, content="Yo"), Turn(id="a2", role=Roles.ASSISTANT), "req_2")

    first = animation.animate_response("One " * 10, "a1", "req_1")
    second = animation.animate_response("Two " * 10, "a2", "req_2")
    await asyncio.gather(first, second)

    assert turns.get("a1").content == "One " * 10
    assert turns.get("a2").content == "Two " * 10


@pytest.mark.asyncio
async def test_cancel_all_stops_reveals(turns):
    gate = asyncio.Event()

    async def blocked_sleep(_delay):
        await gate.wait()

    driver = AnimationDriver(turns, tick_s=0.0, min_tick_s=0.0, sleep=blocked_sleep)
    driver.update_ui_state(*seed(turns), "req_1")
    task = driver.animate_response("Hello", "a1", "req_1")

    driver.cancel_all()

    assert await driver.wait_for(task) is False
    assert turns.get("a1").state == TurnState.STREAMING
    assert not driver.is_animating("a1")


@pytest.mark.asyncio
async def test_cancel_stops_only_the_given_reveal(turns):
    gate = asyncio.Event()

    async def blocked_sleep(_delay):
        await gate.wait()

    driver = AnimationDriver(turns, tick_s=0.0, min_tick_s=0.0, sleep=blocked_sleep)
    driver.update_ui_state(*seed(turns), "req_1")
    driver.update_ui_state(
        Turn(id="u2", role=Roles.USER, content="Yo", state=TurnState.COMPLETED),
        Turn(id="a2", role=Roles.ASSISTANT),
        "req_2",
    )
    first = driver.animate_response("Hello", "a1", "req_1")
    second = driver.animate_response("World", "a2", "req_2")

    assert driver.cancel("a1") is True
    assert driver.cancel("a1") is False
    gate.set()

    assert await driver.wait_for(first) is False
    assert await driver.wait_for(second) is True
    assert turns.get("a1").state == TurnState.STREAMING
    assert turns.get("a2").content == "World"


def test_clear_typing_state_is_idempotent(turns, animation):
    animation.update_ui_state(*seed(turns), "req_1")

    animation.clear_typing_state()
    animation.clear_typing_state()

    assert not turns.typing
