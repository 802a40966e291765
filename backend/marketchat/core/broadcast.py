"""
Shared broadcast manager for real-time fan-out.

One Broadcaster instance per worker process. Broadcaster keeps a single
backend connection (Redis in production, in-process memory for tests and
local runs) and multiplexes every per-user channel subscription through
internal asyncio queues:

    publish -> backend -> Broadcaster -> N asyncio queues -> N subscribers
"""
import logging
from typing import Optional

from broadcaster import Broadcast

from .config import settings

logger = logging.getLogger(__name__)

_broadcast: Optional[Broadcast] = None


def get_broadcast() -> Broadcast:
    """
    Get the shared broadcast instance.

    Raises:
        RuntimeError: If broadcast is not initialized (call connect_broadcast first)
    """
    if _broadcast is None:
        raise RuntimeError("Broadcast not initialized. Call connect_broadcast() during startup.")
    return _broadcast


def is_broadcast_initialized() -> bool:
    """Check if the broadcast instance is initialized and connected."""
    return _broadcast is not None


async def connect_broadcast(url: Optional[str] = None) -> Broadcast:
    """
    Connect the shared Broadcaster.

    Call during application startup (in lifespan manager).
    """
    global _broadcast

    if _broadcast is not None:
        return _broadcast

    broadcast_url = url or settings.broadcast_url or "memory://"
    broadcast = Broadcast(broadcast_url)
    await broadcast.connect()
    _broadcast = broadcast
    logger.info("[BROADCAST] Connected fan-out backend: %s", broadcast_url)
    return broadcast


async def disconnect_broadcast() -> None:
    """
    Disconnect the shared Broadcaster.

    Call during application shutdown.
    """
    global _broadcast

    if _broadcast is not None:
        await _broadcast.disconnect()
        _broadcast = None
        logger.info("[BROADCAST] Disconnected fan-out backend")
