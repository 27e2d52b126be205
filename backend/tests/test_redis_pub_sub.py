"""Tests for the Redis relay, against an in-process stand-in for the client."""
import json

import pytest

from services.redis_pub_sub import CHANNEL_PATTERNS, AsyncRedisPubSubService

pytestmark = pytest.mark.anyio


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.patterns = ()

    async def psubscribe(self, *patterns):
        self.patterns = patterns

    async def listen(self):
        for message in self.messages:
            yield message


class FakeRedis:
    def __init__(self, messages=()):
        self.pubsub_instance = FakePubSub(list(messages))
        self.published = []

    def pubsub(self):
        return self.pubsub_instance

    async def publish(self, channel, data):
        self.published.append((channel, data))


class RecordingManager:
    def __init__(self):
        self.delivered = []

    async def deliver(self, channel, event, payload, exclude_id=None):
        self.delivered.append((channel, event, payload, exclude_id))
        return 1


def pmessage(data, channel="room:r"):
    return {"type": "pmessage", "pattern": "room:*", "channel": channel, "data": data}


async def test_publish_sends_json_envelope():
    service = AsyncRedisPubSubService()
    service.client = FakeRedis()
    envelope = {"channel": "room:r", "event": "ping", "payload": {"n": 1}, "exclude": None}

    await service.publish("room:r", envelope)

    channel, data = service.client.published[0]
    assert channel == "room:r"
    assert json.loads(data) == envelope


async def test_listen_delivers_valid_envelopes_and_skips_malformed_ones():
    valid = {"channel": "room:r", "event": "receiveMessage", "payload": {"n": 1}, "exclude": "c1"}
    service = AsyncRedisPubSubService()
    service.client = FakeRedis([
        {"type": "psubscribe", "pattern": None, "channel": "room:*", "data": 1},
        pmessage("{not json"),
        pmessage(json.dumps({"channel": "room:r", "payload": {}})),
        pmessage(json.dumps(["room:r", "ping"])),
        pmessage(json.dumps(valid)),
    ])
    manager = RecordingManager()

    await service.listen(manager)

    assert service.pubsub.patterns == CHANNEL_PATTERNS
    assert manager.delivered == [("room:r", "receiveMessage", {"n": 1}, "c1")]


async def test_listen_defaults_missing_payload_and_exclude():
    service = AsyncRedisPubSubService()
    service.client = FakeRedis([pmessage(json.dumps({"channel": "blogpost:p", "event": "ping"}), "blogpost:p")])
    manager = RecordingManager()

    await service.listen(manager, "blogpost:*")

    assert service.pubsub.patterns == ("blogpost:*",)
    assert manager.delivered == [("blogpost:p", "ping", {}, None)]
