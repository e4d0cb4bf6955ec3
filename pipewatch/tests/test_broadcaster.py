"""Tests for realtime broadcasting."""

import json
import uuid

import pytest
from pipewatch.src.models.run import CanonicalStatus, ChangeNotice
from pipewatch.src.services.broadcaster import RealtimeBroadcaster, RedisSink, WebSocketSink

def make_notice():
    return ChangeNotice(
        type="execution_updated",
        pipeline_id=uuid.uuid4(),
        execution_id=uuid.uuid4(),
        status=CanonicalStatus.FAILURE,
    )

def test_notice_message_shape():
    notice = make_notice()
    message = notice.to_message()

    assert message == {
        "type": "execution_updated",
        "pipelineId": str(notice.pipeline_id),
        "executionId": str(notice.execution_id),
        "status": "failure",
    }

@pytest.mark.asyncio
async def test_publish_reaches_every_sink(sink):
    broadcaster = RealtimeBroadcaster()
    received = []

    async def other(message):
        received.append(message)

    broadcaster.register(sink)
    broadcaster.register(other)

    assert await broadcaster.publish(make_notice()) == 2
    assert len(sink.messages) == 1
    assert len(received) == 1

@pytest.mark.asyncio
async def test_failing_sink_does_not_block_others(sink):
    broadcaster = RealtimeBroadcaster()

    async def broken(message):
        raise ConnectionError("client went away")

    broadcaster.register(broken)
    broadcaster.register(sink)

    assert await broadcaster.publish(make_notice()) == 1
    assert len(sink.messages) == 1

@pytest.mark.asyncio
async def test_unregistered_sink_gets_nothing(sink):
    broadcaster = RealtimeBroadcaster()
    token = broadcaster.register(sink)
    broadcaster.unregister(token)

    assert broadcaster.listener_count == 0
    assert await broadcaster.publish(make_notice()) == 0
    assert sink.messages == []

class FakeRedis:
    def __init__(self):
        self.published = []
        self.closed = False

    async def publish(self, channel, data):
        self.published.append((channel, data))

    async def close(self):
        self.closed = True

@pytest.mark.asyncio
async def test_redis_sink_publishes_json():
    client = FakeRedis()
    sink = RedisSink("redis://localhost:6379/0", "pipewatch:executions", client=client)
    notice = make_notice()

    await sink(notice.to_message())
    await sink.close()

    channel, data = client.published[0]
    assert channel == "pipewatch:executions"
    assert json.loads(data)["executionId"] == str(notice.execution_id)
    assert client.closed

class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)

@pytest.mark.asyncio
async def test_websocket_sink_forwards_message():
    websocket = FakeWebSocket()
    broadcaster = RealtimeBroadcaster()
    broadcaster.register(WebSocketSink(websocket))

    await broadcaster.publish(make_notice())

    assert websocket.sent[0]["type"] == "execution_updated"
