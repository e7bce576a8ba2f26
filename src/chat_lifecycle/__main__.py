"""
Interactive terminal chat.

Configuration comes from the environment (see 'LifecycleSettings.from_env');
the access token is read from '/secrets/CHAT_ACCESS_TOKEN' or the
'CHAT_ACCESS_TOKEN' variable. Without 'CHAT_STORE_URL' conversations are kept
in memory for the lifetime of the process.

Usage:
    CHAT_ACCESS_TOKEN=... python -m chat_lifecycle
    CHAT_ROOM_ID=42 CHAT_STORE_URL=https://<project>.supabase.co/rest/v1 \\
        CHAT_STORE_API_KEY=... CHAT_ACCESS_TOKEN=... python -m chat_lifecycle

Commands inside the loop:
    /search <question>    ask in search mode
    /regen <n> [text]     regenerate the n-th message (1-based), optionally rewriting the question before it
    /model <name>         switch the model of the current room
    /load <room id>       open another stored room
    /new                  start a new room
    /quit                 leave
"""

import asyncio
import os

from loguru import logger

from chat_lifecycle.auth.base import Session, StaticSessionProvider
from chat_lifecycle.completion.http import HTTPCompletionClient
from chat_lifecycle.config import LifecycleSettings, get_secret
from chat_lifecycle.controller import ChatController
from chat_lifecycle.conversation_database.in_memory import InMemoryConversationDatabase, InMemoryMessageDatabase
from chat_lifecycle.conversation_database.postgrest import (
    PostgRESTClient,
    PostgRESTConversationDatabase,
    PostgRESTMessageDatabase,
)
from chat_lifecycle.errors import LifecycleError
from chat_lifecycle.messages import Roles, TurnState
from chat_lifecycle.models import DEFAULT_MODELS
from chat_lifecycle.utils.logging import configure_logging


def build_controller(settings: LifecycleSettings, session: Session) -> ChatController:
    if settings.store_url:
        if not settings.store_api_key:
            raise ValueError("CHAT_STORE_API_KEY is required when CHAT_STORE_URL is set")
        store = PostgRESTClient(settings.store_url, settings.store_api_key, access_token=lambda: session.access_token)
        conversation_db = PostgRESTConversationDatabase(store)
        message_db = PostgRESTMessageDatabase(store)
        logger.info(f"Storage: PostgREST at {settings.store_url}")
    else:
        conversation_db = InMemoryConversationDatabase()
        message_db = InMemoryMessageDatabase()
        logger.info("Storage: in memory")

    return ChatController(
        completion_client=HTTPCompletionClient(settings.completion_base_url, timeout_s=settings.completion_timeout_s),
        session_provider=StaticSessionProvider(session),
        conversation_db=conversation_db,
        message_db=message_db,
        settings=settings,
    )


def print_turns(controller: ChatController) -> None:
    for position, turn in enumerate(controller.turns, start=1):
        print(f"[{position}] {turn.role}: {turn.content if turn.state != TurnState.ERROR else f'<error: {turn.error}>'}")


async def handle_command(controller: ChatController, line: str) -> bool:
    command, _, argument = line.partition(" ")
    argument = argument.strip()
    if command == "/quit":
        return False
    if command == "/search":
        await send(controller, argument, is_search_mode=True)
    elif command == "/regen":
        position, _, override = argument.partition(" ")
        turns = controller.turns.snapshot()
        if not position.isdigit() or not 1 <= int(position) <= len(turns):
            print("Usage: /regen <n> [new question]")
            return True
        await controller.regenerate(turns[int(position) - 1].id, override or None)
        print_turns(controller)
    elif command == "/model":
        await controller.set_model(argument)
        print(f"Model: {await controller.current_model()}")
    elif command == "/load":
        await controller.load_room(int(argument))
        print_turns(controller)
    elif command == "/new":
        controller.new_room()
    else:
        print(f"Unknown command {command}. Models: {', '.join(model.value for model in DEFAULT_MODELS)}")
    return True


async def send(controller: ChatController, text: str, is_search_mode: bool = False) -> None:
    result = await controller.send(text, is_search_mode=is_search_mode)
    if not result.success:
        print(f"<{result.reason}: {result.error}>")
        return
    last = controller.turns.snapshot()[-1]
    if last.role == Roles.ASSISTANT:
        print(last.content)
        if last.time_warning:
            print(f"({last.time_warning})")


async def run_chat() -> None:
    settings = LifecycleSettings.from_env()
    configure_logging(settings.log_level)

    access_token = get_secret("CHAT_ACCESS_TOKEN")
    if not access_token:
        raise SystemExit("CHAT_ACCESS_TOKEN is not set")
    session = Session(access_token=access_token, user_id=os.getenv("CHAT_USER_ID", "cli-user"))

    controller = build_controller(settings, session)
    room_id = os.getenv("CHAT_ROOM_ID")
    if room_id:
        await controller.load_room(int(room_id))
        print_turns(controller)

    logger.info(f"Chat ready (model {await controller.current_model()}); type /quit to leave")
    try:
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if not line:
                continue
            try:
                if line.startswith("/"):
                    if not await handle_command(controller, line):
                        break
                else:
                    await send(controller, line)
            except (LifecycleError, ValueError) as exc:
                print(f"<error: {exc}>")
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await controller.close()


def main() -> None:
    asyncio.run(run_chat())


if __name__ == "__main__":
    main()
