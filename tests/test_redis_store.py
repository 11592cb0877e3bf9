import asyncio

import fakeredis
import pytest
import redis.asyncio as redis
from redis.exceptions import ConnectionError, ResponseError

from conftest import settle, start_services
from onthespot.errors import CapacityExceededError, NotFoundError, PlanFullError, RemoteWriteFailure
from onthespot.models.location_status import LocationStatus
from onthespot.schemas.location import Location
from onthespot.schemas.plan import Plan
from onthespot.store.base import Query
from onthespot.store.redis_store import RedisStore, decode_document, encode_fields
from test_plan_registry import make_plan


@pytest.fixture
def redis_store():
    # 명령을 보내기 전까지는 연결하지 않는다
    return RedisStore(redis.Redis(decode_responses=True), key_prefix="test:")


def test_key_layout(redis_store):
    assert redis_store.doc_key("plans/p1/messages", "m1") == "test:doc:plans/p1/messages:m1"
    assert redis_store.index_key("spots") == "test:idx:spots"
    assert redis_store.channel("users") == "test:chan:users"


def test_fields_are_stored_as_separate_json_values():
    assert encode_fields({"id": "s1", "name": "x", "coordinate": {"latitude": 1.5}}) == [
        "name", '"x"', "coordinate", '{"latitude": 1.5}',
    ]


def test_empty_lua_tables_read_back_as_lists():
    doc = decode_document({"participants": "{}", "name": '"x"', "points": "0"})
    assert doc == {"participants": [], "name": "x", "points": 0}


def test_bounded_adds_are_supported(redis_store):
    assert redis_store.supports_bounded_add


@pytest.mark.parametrize(
    "error, expected",
    [
        (ResponseError("not_found"), NotFoundError),
        (ResponseError("capacity_exceeded"), CapacityExceededError),
        (ResponseError("ERR something else"), RemoteWriteFailure),
        (ConnectionError("connection refused"), RemoteWriteFailure),
    ],
)
async def test_script_errors_map_to_core_errors(redis_store, error, expected):
    async def script(keys, args):
        raise error

    with pytest.raises(expected):
        await redis_store._run(script, "plans", "p1")


async def test_script_receives_document_keys(redis_store):
    seen = {}

    async def script(keys, args):
        seen["keys"], seen["args"] = keys, args
        return 1

    await redis_store._run(script, "plans", "p1", "participants")

    assert seen["keys"] == ["test:doc:plans:p1", "test:idx:plans", "test:chan:plans"]
    assert seen["args"] == ["p1", "participants"]


# --- fakeredis: Lua 스크립트와 pub/sub 를 실제로 실행 ---


def fake_store(server: fakeredis.FakeServer) -> RedisStore:
    return RedisStore(fakeredis.FakeAsyncRedis(server=server, decode_responses=True), key_prefix="test:")


@pytest.fixture
def server():
    return fakeredis.FakeServer()


@pytest.fixture
async def store(server):
    store = fake_store(server)
    yield store
    await store.close()


async def eventually(check, timeout: float = 3.0) -> None:
    """pub/sub 왕복은 루프 몇 바퀴로 끝나지 않으므로 조건이 맞을 때까지 폴링."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not check():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def test_set_replaces_and_merge_keeps_other_fields(store):
    await store.set("users", "alice", {"name": "Alice", "points": 5})
    await store.set("users", "alice", {"bio": "hi"}, merge=True)
    assert await store.get("users", "alice") == {"id": "alice", "name": "Alice", "points": 5, "bio": "hi"}

    await store.set("users", "alice", {"name": "Alice 2"})
    assert await store.get("users", "alice") == {"id": "alice", "name": "Alice 2"}
    assert [doc["id"] for doc in await store.query(Query("users"))] == ["alice"]


async def test_update_keeps_full_precision_coordinates(store):
    coordinate = {"latitude": 37.56653512345678, "longitude": 126.97796919012345}
    await store.set("spots", "s1", {"name": "Cafe A", "coordinate": coordinate, "currentStatus": "noLine"})

    await store.update("spots", "s1", {"currentStatus": "longLine"})

    doc = await store.get("spots", "s1")
    assert doc["coordinate"] == coordinate
    assert doc["currentStatus"] == "longLine"


async def test_scripts_report_missing_documents(store):
    with pytest.raises(NotFoundError):
        await store.update("spots", "missing", {"name": "x"})
    with pytest.raises(NotFoundError):
        await store.add_to_set("plans", "missing", "participants", "bob")
    assert await store.get("spots", "missing") is None


async def test_bounded_add_rejects_when_full(store):
    await store.set("plans", "p1", {"participants": ["alice"], "maxParticipants": 2})

    assert await store.add_to_set("plans", "p1", "participants", "bob", limit_field="maxParticipants") is True
    assert await store.add_to_set("plans", "p1", "participants", "bob", limit_field="maxParticipants") is False
    with pytest.raises(CapacityExceededError):
        await store.add_to_set("plans", "p1", "participants", "carol", limit_field="maxParticipants")
    assert (await store.get("plans", "p1"))["participants"] == ["alice", "bob"]


async def test_set_membership_and_counters(store):
    assert await store.add_to_set("users", "alice", "hiddenSpots", "s1", create_missing=True) is True
    assert await store.remove_from_set("users", "alice", "hiddenSpots", "s1") is True
    assert await store.remove_from_set("users", "alice", "hiddenSpots", "s1") is False
    assert await store.increment("users", "alice", "points", 50, create_missing=True) == 50
    assert await store.increment("users", "alice", "points", 10) == 60

    doc = await store.get("users", "alice")
    assert doc["hiddenSpots"] == []
    assert doc["points"] == 60


async def test_subscriptions_redeliver_snapshots(store):
    spots = await store.subscribe(Query("spots"))
    alice = await store.subscribe_document("users", "alice")
    try:
        assert await asyncio.wait_for(spots.__anext__(), 3) == []
        assert await asyncio.wait_for(alice.__anext__(), 3) is None

        await store.set("spots", "s1", {"name": "Cafe A"})
        await store.set("users", "bob", {"name": "Bob"})
        await store.set("users", "alice", {"name": "Alice"})

        assert await asyncio.wait_for(spots.__anext__(), 3) == [{"id": "s1", "name": "Cafe A"}]
        # bob 문서 변경은 alice 구독에 전달되지 않는다
        assert await asyncio.wait_for(alice.__anext__(), 3) == {"id": "alice", "name": "Alice"}
    finally:
        await spots.close()
        await alice.close()


async def test_concurrent_joins_never_exceed_capacity_on_redis(store):
    services = await start_services(store)
    try:
        plan = await services.plans.create(make_plan(max_participants=3))

        results = await asyncio.gather(
            *(services.plans.join(plan.id, uid) for uid in ["u1", "u2", "u3", "u4", "u5"]),
            return_exceptions=True,
        )

        assert len([r for r in results if isinstance(r, PlanFullError)]) == 3
        assert len([r for r in results if isinstance(r, Plan)]) == 2
        final = await services.plans.get(plan.id)
        assert len(final.participants) == 3
        assert final.participants[0] == "alice"
    finally:
        await services.stop()


async def test_status_update_reaches_another_device_on_redis(server, store):
    other_store = fake_store(server)
    alice = await start_services(store, "alice")
    bob = await start_services(other_store, "bob")
    try:
        spot = alice.directory.add(Location.new("Cafe A", "Cafe", 37.5, 127.0))
        await settle(alice)
        await eventually(lambda: any(loc.id == spot.id for loc in bob.directory.list()))

        alice.directory.update_status(spot.id, LocationStatus.LONG_LINE)
        await settle(alice)

        await eventually(lambda: bob.directory.get(spot.id).current_status == LocationStatus.LONG_LINE)
        await eventually(lambda: alice.profile.contribution_points == 60)
    finally:
        await alice.stop()
        await bob.stop()
        await other_store.close()
