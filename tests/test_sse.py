import json

from onthespot.realtime import sse
from onthespot.realtime.live import LiveQuery, LiveValue
from onthespot.store.base import Subscription


def parse(chunk: str):
    lines = chunk.strip().split("\n")
    event = lines[0].removeprefix("event: ")
    data = json.loads(lines[1].removeprefix("data: "))
    return event, data


async def test_format_event():
    event, data = parse(sse.format_event("spots", [1, 2]))
    assert event == "spots"
    assert data["type"] == "spots"
    assert data["data"] == [1, 2]
    assert "ts" in data


async def test_live_query_stream_ends_with_stale_event():
    subscription = Subscription()
    live = LiveQuery(subscription, lambda docs: [d["id"] for d in docs])
    subscription.push([{"id": "a"}])
    subscription.fail(RuntimeError("listener died"))

    chunks = [chunk async for chunk in sse.stream_live_query(live, "plans", list)]

    assert [parse(c)[0] for c in chunks] == ["plans", "stale"]
    assert parse(chunks[0])[1]["data"] == ["a"]
    assert live.stale
    assert subscription.closed


async def test_closed_source_ends_without_stale_event():
    subscription = Subscription()
    live = LiveQuery(subscription, list)
    await subscription.close()

    chunks = [chunk async for chunk in sse.stream_live_query(live, "messages", list)]

    assert chunks == []


async def test_live_value_watch_yields_current_then_changes():
    value = LiveValue(1)
    watcher = value.watch()
    assert await watcher.__anext__() == 1
    value.set(2)
    assert await watcher.__anext__() == 2
    await watcher.aclose()
    assert value._observers == []
