# backend/marketchat/services/messaging/events.py
"""
Messaging event type definitions and builders.

All events follow this structure:
{
    "type": str,           # Event type identifier
    "schema_version": int, # Schema version (currently 1)
    "timestamp": str,      # ISO 8601 timestamp
    "payload": dict        # Event-specific data
}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from ...schemas.conversation import MessageRecord


class EventType(str, Enum):
    """Valid messaging event types."""

    NEW_MESSAGE = "new_message"


# Current schema version - increment when payload structure changes
SCHEMA_VERSION = 1


def user_channel(user_id: str) -> str:
    """Pub/sub channel carrying events addressed to one user."""
    return f"user:{user_id}"


def build_event(event_type: EventType, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build a properly structured event.

    Args:
        event_type: The type of event
        payload: Event-specific payload data

    Returns:
        Complete event dict ready for publishing
    """
    return {
        "type": event_type.value,
        "schema_version": SCHEMA_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }


def build_new_message_event(message: MessageRecord) -> Dict[str, Any]:
    """Build a new_message event for the message's receiver."""
    return build_event(
        EventType.NEW_MESSAGE,
        {
            "conversation_id": message.conversation_id,
            "sender_id": message.sender_id,
            "receiver_id": message.receiver_id,
            "message": message.model_dump(mode="json"),
        },
    )
