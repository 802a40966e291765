# backend/marketchat/services/messaging/publisher.py
"""
Publishing of messaging events via Broadcaster.

The conversation service is synchronous and runs in worker threads, while
Broadcaster lives on the application's event loop. The publisher bridges
the two: it is bound to the loop at startup and schedules each publish on
it without waiting for the result.

Design decisions:
- Fire-and-forget: failures are logged and counted, never raised
- No bound loop or broadcast means the event is dropped with a warning;
  the message itself is already committed and clients catch up on reconnect
- Pending publishes are tracked so shutdown can drain them
"""

import asyncio
from concurrent.futures import Future
import json
import logging
import threading
from typing import Any, Dict, Optional, Protocol, Set, Union

from ...core.broadcast import get_broadcast, is_broadcast_initialized
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.conversation import MessageRecord
from .events import build_new_message_event, user_channel

logger = logging.getLogger(__name__)


class MessagePublisher(Protocol):
    """Fan-out hook called by the conversation service after a send commits."""

    def publish_new_message(self, message: MessageRecord) -> None:
        """Deliver the message to the receiver's live subscriptions; must not raise."""
        ...


async def publish_to_user(user_id: str, event: Dict[str, Any]) -> bool:
    """
    Publish an event to a user's channel via Broadcaster.

    Args:
        user_id: The target user's id
        event: The event dict (will be JSON serialized)

    Returns:
        True if the backend accepted the publish
    """
    channel = user_channel(user_id)
    try:
        broadcast = get_broadcast()
        await broadcast.publish(channel=channel, message=json.dumps(event))
        logger.debug(f"[PUBLISHER] Published {event.get('type')} to {channel}")
        return True
    except RuntimeError as e:
        # Broadcast not initialized
        logger.warning(f"[PUBLISHER] Broadcast not initialized, cannot publish: {e}")
    except Exception as e:
        logger.error(f"[PUBLISHER] Failed to publish to {channel}: {e}")
    return False


PendingPublish = Union["asyncio.Task[bool]", "Future[bool]"]


class BroadcastMessagePublisher:
    """MessagePublisher backed by the shared Broadcaster connection."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._pending: Set[PendingPublish] = set()
        self._lock = threading.Lock()

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        """Attach (or detach, with None) the event loop that owns the broadcast."""
        self._loop = loop
        logger.info("[PUBLISHER] %s event loop", "Bound to" if loop else "Unbound from")

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def publish_new_message(self, message: MessageRecord) -> None:
        """Schedule a new_message event to the receiver and return immediately."""
        loop = self._loop
        if loop is None or loop.is_closed() or not is_broadcast_initialized():
            logger.warning(
                "[PUBLISHER] No active broadcast, dropping new_message event",
                extra={"message_id": message.id, "receiver_id": message.receiver_id},
            )
            prometheus_metrics.inc_fanout("dropped")
            return

        event = build_new_message_event(message)
        try:
            running: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        try:
            pending: PendingPublish
            if running is loop:
                pending = loop.create_task(self._publish(message.receiver_id, event))
            else:
                pending = asyncio.run_coroutine_threadsafe(
                    self._publish(message.receiver_id, event), loop
                )
        except RuntimeError as e:
            # Loop closed between the check and scheduling
            logger.warning(f"[PUBLISHER] Could not schedule publish: {e}")
            prometheus_metrics.inc_fanout("dropped")
            return

        with self._lock:
            self._pending.add(pending)
        pending.add_done_callback(self._forget)
        prometheus_metrics.inc_fanout("scheduled")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for scheduled publishes to finish. Must run on the bound loop."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return
        waiters = [p if isinstance(p, asyncio.Task) else asyncio.wrap_future(p) for p in pending]
        _, not_done = await asyncio.wait(waiters, timeout=timeout)
        if not_done:
            logger.warning(f"[PUBLISHER] {len(not_done)} publishes still pending after drain")

    async def _publish(self, receiver_id: str, event: Dict[str, Any]) -> bool:
        published = await publish_to_user(receiver_id, event)
        prometheus_metrics.inc_fanout("published" if published else "failed")
        return published

    def _forget(self, pending: Any) -> None:
        with self._lock:
            self._pending.discard(pending)


# Process-wide publisher, bound to the event loop during application startup
message_publisher = BroadcastMessagePublisher()
