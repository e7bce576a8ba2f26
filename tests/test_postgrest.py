import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from chat_lifecycle.conversation_database.data_models.message import MessageUpsert
from chat_lifecycle.conversation_database.postgrest import (
    PostgRESTClient,
    PostgRESTConversationDatabase,
    PostgRESTMessageDatabase,
)
from chat_lifecycle.errors import PersistenceError
from chat_lifecycle.messages import Roles


class FakePostgREST:
    """Just enough of PostgREST for the two tables: eq filters, on_conflict upserts, representation returns."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {"chatrooms": [], "messages": []}
        self.requests: list[web.Request] = []
        self.fail_with: int | None = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/rest/v1/{table}", self.handle)
        return app

    def matches(self, row: dict, query) -> bool:
        for key, value in query.items():
            if key in ("select", "order", "on_conflict"):
                continue
            if str(row.get(key)) != value.removeprefix("eq."):
                return False
        return True

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append(request)
        if self.fail_with:
            return web.json_response({"message": "boom"}, status=self.fail_with)
        rows = self.tables[request.match_info["table"]]
        query = request.query

        if request.method == "GET":
            return web.json_response(sorted((r for r in rows if self.matches(r, query)), key=lambda r: r["id"]))

        payload = await request.json()
        if request.method == "POST":
            written = []
            conflict_keys = query.get("on_conflict", "").split(",") if "on_conflict" in query else []
            for item in payload if isinstance(payload, list) else [payload]:
                existing = None
                if conflict_keys:
                    existing = next((r for r in rows if all(r.get(k) == item.get(k) for k in conflict_keys)), None)
                if existing is not None:
                    existing.update(item, updated_at="2024-01-02T00:00:00+00:00")
                    written.append(existing)
                else:
                    row = {"id": len(rows) + 1, "created_at": "2024-01-01T00:00:00+00:00", "updated_at": None, **item}
                    rows.append(row)
                    written.append(row)
            return web.json_response(written, status=201)

        if request.method == "PATCH":
            updated = [r for r in rows if self.matches(r, query)]
            for row in updated:
                row.update(payload)
            return web.json_response(updated)

        return web.Response(status=405)


@pytest_asyncio.fixture
async def postgrest():
    fake = FakePostgREST()
    server = test_utils.TestServer(fake.app())
    await server.start_server()
    client = PostgRESTClient(str(server.make_url("/rest/v1")), "anon-key", access_token=lambda: "user-token")
    yield fake, client
    await server.close()


@pytest.mark.asyncio
async def test_conversation_roundtrip(postgrest):
    fake, client = postgrest
    db = PostgRESTConversationDatabase(client)

    created = await db.create_conversation("user-1", "gpt-4o", "New Chat")
    updated = await db.update_conversation(created.id, name="Pallets", model="gpt-4")
    fetched = await db.get_conversation_by_id(created.id)

    assert created.model == "gpt-4o"
    assert updated.name == "Pallets"
    assert fetched.model == "gpt-4"
    assert await db.get_conversation_by_id(999) is None
    assert fake.requests[0].headers["apikey"] == "anon-key"
    assert fake.requests[0].headers["Authorization"] == "Bearer user-token"


@pytest.mark.asyncio
async def test_update_of_unknown_conversation_raises_key_error(postgrest):
    _, client = postgrest

    with pytest.raises(KeyError):
        await PostgRESTConversationDatabase(client).update_conversation(42, name="x")


@pytest.mark.asyncio
async def test_message_upsert_is_keyed_on_client_id(postgrest):
    fake, client = postgrest
    db = PostgRESTMessageDatabase(client)

    def batch(answer: str) -> list[MessageUpsert]:
        return [
            MessageUpsert(room_id=1, user_id="user-1", role=Roles.USER, content="Q", client_id="u1"),
            MessageUpsert(room_id=1, user_id="user-1", role=Roles.ASSISTANT, content=answer, client_id="a1"),
        ]

    first = await db.upsert_messages(batch("A"))
    second = await db.upsert_messages(batch("B"))

    assert [m.id for m in first] == [m.id for m in second]
    assert [m.role for m in second] == [Roles.USER, Roles.ASSISTANT]
    assert len(fake.tables["messages"]) == 2
    upsert_request = fake.requests[0]
    assert upsert_request.query["on_conflict"] == "room_id,role,client_id"
    assert "resolution=merge-duplicates" in upsert_request.headers["Prefer"]

    rows = await db.get_messages_by_room_id(1)
    assert [r.content for r in rows] == ["Q", "B"]


@pytest.mark.asyncio
async def test_targeted_message_updates(postgrest):
    _, client = postgrest
    db = PostgRESTMessageDatabase(client)
    stored = await db.upsert_messages(
        [MessageUpsert(room_id=1, user_id="user-1", role=Roles.ASSISTANT, content="Old", client_id="a1")]
    )

    by_client = await db.update_message_content_by_client_id(1, Roles.ASSISTANT, "a1", "New")
    by_id = await db.update_message_content(stored[0].id, "Newer")

    assert by_client.content == "New"
    assert by_id.content == "Newer"
    assert await db.update_message_content(999, "x") is None


@pytest.mark.asyncio
async def test_http_errors_become_persistence_errors(postgrest):
    fake, client = postgrest
    fake.fail_with = 500

    with pytest.raises(PersistenceError):
        await PostgRESTMessageDatabase(client).get_messages_by_room_id(1)
