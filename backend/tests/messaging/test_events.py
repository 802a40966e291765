"""Tests for messaging event builders."""

from marketchat.services.messaging.events import (
    SCHEMA_VERSION,
    EventType,
    build_new_message_event,
    user_channel,
)


def test_user_channel():
    assert user_channel("u2") == "user:u2"


def test_new_message_event_shape(make_record):
    record = make_record(content="hello")

    event = build_new_message_event(record)

    assert event["type"] == EventType.NEW_MESSAGE.value
    assert event["schema_version"] == SCHEMA_VERSION
    assert "timestamp" in event
    payload = event["payload"]
    assert payload["conversation_id"] == record.conversation_id
    assert payload["sender_id"] == "u1"
    assert payload["receiver_id"] == "u2"
    assert payload["message"]["id"] == record.id
    assert payload["message"]["content"] == "hello"
