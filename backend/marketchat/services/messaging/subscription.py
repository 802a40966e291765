# backend/marketchat/services/messaging/subscription.py
"""
Caller-owned subscription to a user's incoming messages.

An IncomingSubscription wraps one Broadcaster channel subscription with an
explicit lifecycle:

    subscription = subscribe_to_incoming(user_id)
    async with subscription:
        async for incoming in subscription:
            ...

A reader task forwards raw broadcast events into a local queue, so the
consumer can wait on the queue with a timeout (for heartbeats) without
cancelling the Broadcaster iterator itself.
"""

import asyncio
from dataclasses import dataclass
import json
import logging
from types import TracebackType
from typing import Any, AsyncContextManager, Optional, Tuple, Type

from broadcaster import Broadcast
from pydantic import ValidationError

from ...core.broadcast import get_broadcast
from ...schemas.conversation import MessageRecord
from .events import EventType, user_channel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncomingMessage:
    """A new message delivered to the subscription's owner."""

    conversation_id: str
    message: MessageRecord


class IncomingSubscription:
    """Live feed of messages addressed to one user."""

    def __init__(self, user_id: str, broadcast: Optional[Broadcast] = None) -> None:
        self.user_id = user_id
        self.channel = user_channel(user_id)
        self._broadcast = broadcast
        self._context: Optional[AsyncContextManager[Any]] = None
        self._reader: Optional["asyncio.Task[None]"] = None
        self._queue: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()

    @property
    def is_active(self) -> bool:
        return self._context is not None

    async def start(self) -> "IncomingSubscription":
        """
        Subscribe to the owner's channel. Idempotent.

        Raises:
            RuntimeError: If no broadcast is available
        """
        if self._context is not None:
            return self

        broadcast = self._broadcast or get_broadcast()
        # Drop markers left behind by a previous stop()
        self._queue = asyncio.Queue()
        context = broadcast.subscribe(channel=self.channel)
        subscriber = await context.__aenter__()
        self._context = context
        self._reader = asyncio.create_task(self._read(subscriber))
        logger.info(
            f"[SUBSCRIPTION] Subscribed to channel {self.channel}",
            extra={"user_id": self.user_id},
        )
        return self

    async def stop(self) -> None:
        """Tear down the reader and the channel subscription. Safe to call repeatedly."""
        context, self._context = self._context, None
        reader, self._reader = self._reader, None

        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if context is not None:
            try:
                await context.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"[SUBSCRIPTION] Error closing {self.channel}: {e}")
            logger.info(
                f"[SUBSCRIPTION] Unsubscribed from channel {self.channel}",
                extra={"user_id": self.user_id},
            )

        # Wake up a consumer blocked on the queue
        self._queue.put_nowait(("done", None))

    async def __aenter__(self) -> "IncomingSubscription":
        return await self.start()

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    def __aiter__(self) -> "IncomingSubscription":
        return self

    async def __anext__(self) -> IncomingMessage:
        while True:
            if self._context is None and self._queue.empty():
                raise StopAsyncIteration

            kind, data = await self._queue.get()
            if kind == "done":
                raise StopAsyncIteration
            if kind == "error":
                logger.error(f"[SUBSCRIPTION] Reader error for user {self.user_id}: {data}")
                await self.stop()
                raise StopAsyncIteration

            incoming = self._parse(data)
            if incoming is not None:
                return incoming

    async def _read(self, subscriber: Any) -> None:
        """Read from the Broadcaster subscriber and forward to the local queue."""
        try:
            async for event in subscriber:
                await self._queue.put(("message", event.message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._queue.put(("error", e))
        else:
            await self._queue.put(("done", None))

    def _parse(self, raw: Any) -> Optional[IncomingMessage]:
        """Turn a raw channel payload into an IncomingMessage, or None to skip it."""
        try:
            event = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(f"[SUBSCRIPTION] Invalid JSON on {self.channel}: {e}")
            return None

        event_type = event.get("type") if isinstance(event, dict) else None
        if event_type != EventType.NEW_MESSAGE.value:
            logger.debug(
                "[SUBSCRIPTION] Skipping event",
                extra={"user_id": self.user_id, "event_type": event_type},
            )
            return None

        payload = event.get("payload")
        try:
            message = MessageRecord.model_validate(payload["message"])
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning(f"[SUBSCRIPTION] Malformed new_message on {self.channel}: {e}")
            return None

        if message.receiver_id != self.user_id:
            logger.debug(
                "[SUBSCRIPTION] Skipping message for another user",
                extra={"user_id": self.user_id, "message_id": message.id},
            )
            return None

        return IncomingMessage(conversation_id=message.conversation_id, message=message)


def subscribe_to_incoming(
    user_id: str, broadcast: Optional[Broadcast] = None
) -> IncomingSubscription:
    """
    Create a subscription handle for a user's incoming messages.

    The handle is not started; use it as an async context manager or call
    start()/stop() explicitly.
    """
    return IncomingSubscription(user_id, broadcast=broadcast)
