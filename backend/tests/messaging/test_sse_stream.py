"""Tests for the SSE stream generator."""

import asyncio
import json

import pytest

from marketchat.services.messaging.events import build_new_message_event, user_channel
from marketchat.services.messaging.sse_stream import create_sse_stream, format_message_event
from marketchat.services.messaging.subscription import IncomingSubscription


async def _next(stream, timeout=1.0):
    return await asyncio.wait_for(stream.__anext__(), timeout=timeout)


def test_format_message_event(make_record):
    record = make_record()

    for_receiver = format_message_event(record, "u2")
    for_sender = format_message_event(record, "u1")

    assert for_receiver["id"] == record.id
    assert for_receiver["event"] == "new_message"
    data = json.loads(for_receiver["data"])
    assert data["conversation_id"] == record.conversation_id
    assert data["message"]["content"] == "hi"
    assert data["is_mine"] is False
    assert json.loads(for_sender["data"])["is_mine"] is True


@pytest.mark.asyncio
async def test_replays_missed_then_connects_then_streams_live(memory_broadcast, make_record):
    missed = [make_record(content="missed 1"), make_record(content="missed 2")]
    live = make_record(content="live")
    subscription = IncomingSubscription("u2", broadcast=memory_broadcast)
    stream = create_sse_stream("u2", missed, heartbeat_interval=5, subscription=subscription)

    try:
        assert (await _next(stream))["id"] == missed[0].id
        assert (await _next(stream))["id"] == missed[1].id
        connected = await _next(stream)
        assert connected["event"] == "connected"
        assert json.loads(connected["data"])["user_id"] == "u2"

        await memory_broadcast.publish(
            channel=user_channel("u2"), message=json.dumps(build_new_message_event(live))
        )
        event = await _next(stream)
        assert event["event"] == "new_message"
        assert event["id"] == live.id
    finally:
        await stream.aclose()

    assert subscription.is_active is False


@pytest.mark.asyncio
async def test_live_copy_of_replayed_message_is_skipped(memory_broadcast, make_record):
    replayed = make_record(content="already sent")
    fresh = make_record(content="fresh")
    subscription = IncomingSubscription("u2", broadcast=memory_broadcast)
    stream = create_sse_stream("u2", [replayed], heartbeat_interval=5, subscription=subscription)

    try:
        assert (await _next(stream))["id"] == replayed.id
        assert (await _next(stream))["event"] == "connected"

        for record in (replayed, fresh):
            await memory_broadcast.publish(
                channel=user_channel("u2"), message=json.dumps(build_new_message_event(record))
            )

        assert (await _next(stream))["id"] == fresh.id
    finally:
        await stream.aclose()


@pytest.mark.asyncio
async def test_idle_stream_sends_heartbeats(memory_broadcast):
    subscription = IncomingSubscription("u2", broadcast=memory_broadcast)
    stream = create_sse_stream("u2", heartbeat_interval=0.05, subscription=subscription)

    try:
        assert (await _next(stream))["event"] == "connected"
        heartbeat = await _next(stream)
        assert heartbeat["event"] == "heartbeat"
        assert "id" not in heartbeat
    finally:
        await stream.aclose()


@pytest.mark.asyncio
async def test_unavailable_broadcast_sends_missed_then_error(make_record):
    missed = make_record(content="missed")
    stream = create_sse_stream("u2", [missed], heartbeat_interval=5)

    events = [event async for event in stream]

    assert [event["event"] for event in events] == ["new_message", "error"]
    assert json.loads(events[1]["data"])["error"] == "service_unavailable"
