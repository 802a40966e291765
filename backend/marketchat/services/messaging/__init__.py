# backend/marketchat/services/messaging/__init__.py
"""
Real-time fan-out of new messages.

Components:
- events: Event envelope and builders
- publisher: Fire-and-forget publishing through the shared Broadcaster
- subscription: Caller-owned handle for a user's incoming messages
- sse_stream: Server-Sent Events stream built on the subscription
"""

from .events import SCHEMA_VERSION, EventType, build_event, build_new_message_event, user_channel
from .publisher import (
    BroadcastMessagePublisher,
    MessagePublisher,
    message_publisher,
    publish_to_user,
)
from .sse_stream import create_sse_stream, format_message_event
from .subscription import IncomingMessage, IncomingSubscription, subscribe_to_incoming

__all__ = [
    "SCHEMA_VERSION",
    "EventType",
    "build_event",
    "build_new_message_event",
    "user_channel",
    "BroadcastMessagePublisher",
    "MessagePublisher",
    "message_publisher",
    "publish_to_user",
    "create_sse_stream",
    "format_message_event",
    "IncomingMessage",
    "IncomingSubscription",
    "subscribe_to_incoming",
]
