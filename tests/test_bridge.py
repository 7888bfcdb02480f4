import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from bridge import LocalPublishBridge, Publisher, RedisPublishBridge, build_bridge
from conftest import LOCAL_ORIGIN, Recorder
from constants import Settings
from origin_policy import build_allow_list
from realtime import RealtimeGateway


class FakePubSub:
    """Yields its messages, then either fails with `error` or idles until cancelled."""

    def __init__(self, messages, error=None):
        self.messages = messages
        self.error = error
        self.patterns = []
        self.closed = False

    async def psubscribe(self, *patterns):
        self.patterns.extend(patterns)

    async def listen(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error
        await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self, subscribers=1, pubsubs=()):
        self.published = []
        self.subscribers = subscribers
        self.pubsubs = list(pubsubs)
        self.closed = False

    def pubsub(self, **kwargs):
        return self.pubsubs.pop(0)

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return self.subscribers

    async def aclose(self):
        self.closed = True


@pytest.fixture
def gateway():
    return RealtimeGateway(build_allow_list("https://frontend.example"))


async def member_of(gateway, room_id):
    recorder = Recorder()
    connection = gateway.open(LOCAL_ORIGIN, recorder)
    await gateway.activate(connection)
    await gateway.join(connection, room_id)
    return recorder


def test_build_bridge_picks_local_without_redis(gateway):
    assert isinstance(build_bridge(gateway, Settings(_env_file=None, redis_url=None)), LocalPublishBridge)


def test_build_bridge_picks_redis_when_configured(gateway):
    bridge = build_bridge(gateway, Settings(_env_file=None, redis_url="redis://localhost:6379/0"))
    assert isinstance(bridge, RedisPublishBridge)


@pytest.mark.asyncio
async def test_publisher_forwards_to_the_gateway(gateway):
    recorder = await member_of(gateway, "42")
    publisher = Publisher(LocalPublishBridge(gateway))

    assert await publisher.publish("42", "new-message", {"text": "hi"}) == 1
    assert recorder.events("new-message") == [{"text": "hi"}]


def test_publisher_exposes_only_publish(gateway):
    publisher = Publisher(LocalPublishBridge(gateway))
    public = [name for name in dir(publisher) if not name.startswith("_")]
    assert public == ["publish"]


@pytest.mark.asyncio
async def test_redis_publish_writes_to_the_room_channel(gateway):
    fake = FakeRedis(subscribers=3)
    bridge = RedisPublishBridge(gateway, "redis://unused", client=fake)

    assert await bridge.publish("42", "new-message", {"text": "hi"}) == 3
    channel, message = fake.published[0]
    assert channel == "room:channel:42"
    assert json.loads(message) == {"event": "new-message", "data": {"text": "hi"}}


@pytest.mark.asyncio
async def test_redis_relay_delivers_to_local_members(gateway):
    recorder = await member_of(gateway, "match:42")
    bridge = RedisPublishBridge(gateway, "redis://unused", client=FakeRedis())

    payload = json.dumps({"event": "new-message", "data": {"text": "hi"}})
    assert await bridge.relay("room:channel:match:42", payload) == 1
    assert recorder.events("new-message") == [{"text": "hi"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("data", ["not json", json.dumps({"data": 1}), json.dumps(["event"])])
async def test_redis_relay_drops_malformed_messages(gateway, data):
    recorder = await member_of(gateway, "42")
    bridge = RedisPublishBridge(gateway, "redis://unused", client=FakeRedis())

    assert await bridge.relay("room:channel:42", data) == 0
    assert recorder.events("new-message") == []


@pytest.mark.asyncio
async def test_redis_stop_closes_the_client(gateway):
    fake = FakeRedis()
    bridge = RedisPublishBridge(gateway, "redis://unused", client=fake)
    await bridge.stop()
    assert fake.closed


def pmessage(room_id, text):
    return {
        "type": "pmessage",
        "pattern": "room:channel:*",
        "channel": f"room:channel:{room_id}",
        "data": json.dumps({"event": "new-message", "data": {"text": text}}),
    }


@pytest.mark.asyncio
async def test_redis_listener_resubscribes_after_losing_the_connection(gateway):
    recorder = await member_of(gateway, "42")
    dropped = FakePubSub([pmessage("42", "before")], error=RedisConnectionError("connection reset"))
    resumed = FakePubSub([pmessage("42", "after")])
    fake = FakeRedis(pubsubs=[dropped, resumed])
    bridge = RedisPublishBridge(gateway, "redis://unused", client=fake, reconnect_delay=0.01)

    await bridge.start()
    for _ in range(200):
        if len(recorder.events("new-message")) == 2:
            break
        await asyncio.sleep(0.01)

    assert bridge.listening
    assert recorder.events("new-message") == [{"text": "before"}, {"text": "after"}]
    assert dropped.patterns == ["room:channel:*"]
    assert resumed.patterns == ["room:channel:*"]
    assert dropped.closed

    await bridge.stop()
    assert not bridge.listening
    assert resumed.closed
    assert fake.closed
