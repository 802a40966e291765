"""Fixtures for the real-time fan-out tests."""

from typing import Callable

import pytest
import pytest_asyncio

from marketchat.core.broadcast import connect_broadcast, disconnect_broadcast
from marketchat.core.ulid_helper import generate_ulid
from marketchat.models.types import utc_now
from marketchat.schemas.conversation import MessageRecord


@pytest_asyncio.fixture
async def shared_broadcast():
    """The process-wide Broadcaster, connected to the in-memory backend."""
    broadcast = await connect_broadcast("memory://")
    try:
        yield broadcast
    finally:
        await disconnect_broadcast()


@pytest.fixture
def make_record() -> Callable[..., MessageRecord]:
    def _make(
        sender_id: str = "u1",
        receiver_id: str = "u2",
        content: str = "hi",
        conversation_id: str = "01HQCONVERSATION0000000000",
    ) -> MessageRecord:
        return MessageRecord(
            id=generate_ulid(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            created_at=utc_now(),
        )

    return _make
