import json
from unittest.mock import AsyncMock

from bson import ObjectId
from redis.exceptions import ConnectionError as RedisConnectionError

from resource_api.core.messaging import WILDCARD, Messenger, RedisEventRelay


async def test_emit_to_sync_and_async_listeners():
    messenger = Messenger()
    received = []

    def sync_listener(event, payload):
        received.append(("sync", event, payload))

    async def async_listener(event, payload):
        received.append(("async", event, payload))

    messenger.on("book.created", sync_listener)
    messenger.on("book.created", async_listener)

    notified = await messenger.emit("book.created", {"title": "Dune"})

    assert notified == 2
    assert received == [
        ("sync", "book.created", {"title": "Dune"}),
        ("async", "book.created", {"title": "Dune"}),
    ]


async def test_wildcard_listener_receives_everything():
    messenger = Messenger()
    received = []
    messenger.on(WILDCARD, lambda event, payload: received.append(event))

    await messenger.emit("author.created")
    await messenger.emit("author.deleted")

    assert received == ["author.created", "author.deleted"]


async def test_failing_listener_does_not_stop_others():
    messenger = Messenger()
    received = []

    def broken(event, payload):
        raise RuntimeError("boom")

    messenger.on("x", broken)
    messenger.on("x", lambda event, payload: received.append(payload))

    await messenger.emit("x", 1)

    assert received == [1]


async def test_off_removes_listener():
    messenger = Messenger()
    received = []

    def listener(event, payload):
        received.append(event)

    messenger.on("x", listener)
    messenger.off("x", listener)
    messenger.off("x", listener)

    assert await messenger.emit("x") == 0
    assert received == []


async def test_redis_relay_publishes_json():
    client = AsyncMock()
    client.publish.return_value = 1
    relay = RedisEventRelay(client, channel_prefix="library:")

    messenger = Messenger()
    relay.attach(messenger)

    doc_id = ObjectId()
    await messenger.emit("book.created", {"_id": doc_id, "title": "Dune"})

    client.publish.assert_awaited_once()
    channel, message = client.publish.await_args.args
    assert channel == "library:book.created"
    assert json.loads(message) == {"_id": str(doc_id), "title": "Dune"}


async def test_redis_relay_swallows_redis_errors():
    client = AsyncMock()
    client.publish.side_effect = RedisConnectionError("down")
    relay = RedisEventRelay(client)

    await relay("book.deleted", {"title": "Dune"})

    client.publish.assert_awaited_once()
