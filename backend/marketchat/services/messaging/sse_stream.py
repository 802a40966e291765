# backend/marketchat/services/messaging/sse_stream.py
"""
SSE stream of a user's incoming messages.

Built on IncomingSubscription, which multiplexes through the shared
Broadcaster connection (one backend connection per worker).

Stream order:
1. Missed messages (Last-Event-ID catch-up, pre-fetched by the caller)
2. A `connected` event
3. Live `new_message` events, with `heartbeat` events while idle

The subscription is opened before the catch-up is replayed, so a message
sent during the replay is delivered live instead of being lost; messages
already replayed are not sent twice.

Event types:
- new_message: Includes SSE `id:` field for Last-Event-ID tracking
- connected, heartbeat, error: No `id:` field
"""

import asyncio
from datetime import datetime, timezone
import json
import logging
from typing import AsyncGenerator, Dict, List, Optional, Set

from ...core.config import settings
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.conversation import MessageRecord
from .subscription import IncomingSubscription, subscribe_to_incoming

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_message_event(message: MessageRecord, user_id: str) -> Dict[str, str]:
    """
    Format a message as an SSE new_message event.

    Used for both catch-up and live delivery so clients see one shape.
    """
    payload = {
        "conversation_id": message.conversation_id,
        "message": message.model_dump(mode="json"),
        "is_mine": message.sender_id == user_id,
    }
    return {
        "id": message.id,
        "event": "new_message",
        "data": json.dumps(payload),
    }


def _connected_event(user_id: str) -> Dict[str, str]:
    return {
        "event": "connected",
        "data": json.dumps({"user_id": user_id, "status": "connected", "timestamp": _timestamp()}),
    }


def _heartbeat_event() -> Dict[str, str]:
    return {
        "event": "heartbeat",
        "data": json.dumps({"type": "heartbeat", "timestamp": _timestamp()}),
    }


def _error_event() -> Dict[str, str]:
    return {
        "event": "error",
        "data": json.dumps(
            {
                "error": "service_unavailable",
                "message": "Real-time service temporarily unavailable",
            }
        ),
    }


async def create_sse_stream(
    user_id: str,
    missed_messages: Optional[List[MessageRecord]] = None,
    *,
    heartbeat_interval: Optional[float] = None,
    subscription: Optional[IncomingSubscription] = None,
) -> AsyncGenerator[Dict[str, str], None]:
    """
    Create an SSE stream for a user.

    This function is DB-free - all DB operations must be done before calling,
    so no session is held open for the lifetime of the connection.

    Args:
        user_id: The subscribing user's id
        missed_messages: Pre-fetched missed messages (from Last-Event-ID lookup)
        heartbeat_interval: Seconds of idle time between heartbeats
        subscription: Subscription handle to use (a new one by default)

    Yields:
        SSE event dicts with keys: event, data, id (new_message only)
    """
    interval = heartbeat_interval or settings.sse_heartbeat_interval
    subscription = subscription or subscribe_to_incoming(user_id)

    subscribe_error: Optional[RuntimeError] = None
    try:
        await subscription.start()
    except RuntimeError as e:
        # Broadcast not initialized
        subscribe_error = e

    prometheus_metrics.sse_connection_opened()
    try:
        # Step 1: Send any missed messages (pre-fetched by caller)
        replayed: Set[str] = set()
        if missed_messages:
            logger.info(
                f"[SSE-STREAM] Sending {len(missed_messages)} missed messages",
                extra={"user_id": user_id, "count": len(missed_messages)},
            )
            for message in missed_messages:
                replayed.add(message.id)
                yield format_message_event(message, user_id)

        if subscribe_error is not None:
            logger.error(f"[SSE-STREAM] Broadcast error for user {user_id}: {subscribe_error}")
            yield _error_event()
            return

        # Step 2: Send connected event
        yield _connected_event(user_id)

        # Step 3: Stream live events with heartbeat
        while True:
            try:
                incoming = await asyncio.wait_for(subscription.__anext__(), timeout=interval)
            except asyncio.TimeoutError:
                logger.debug(f"[SSE-HEARTBEAT] Sending heartbeat for user {user_id}")
                yield _heartbeat_event()
                continue
            except StopAsyncIteration:
                logger.info(f"[SSE-STREAM] Subscription ended for user {user_id}")
                break

            if incoming.message.id in replayed:
                continue
            yield format_message_event(incoming.message, user_id)

    except asyncio.CancelledError:
        logger.info(f"[SSE-STREAM] Stream cancelled for user {user_id}")
        raise
    finally:
        await subscription.stop()
        prometheus_metrics.sse_connection_closed()
        logger.info(f"[SSE-STREAM] Stream closed for user {user_id}")
