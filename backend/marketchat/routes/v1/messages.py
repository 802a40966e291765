# backend/marketchat/routes/v1/messages.py
"""
Messages routes - API v1

Per-user endpoints under /api/v1/messages.

Endpoints (static routes only):
    GET /stream        - SSE stream of the caller's incoming messages
    GET /unread-count  - Total unread count for the caller
"""

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from ...api.dependencies import get_conversation_service, get_current_user_id
from ...core.ulid_helper import is_valid_ulid
from ...schemas.conversation import MessageRecord, TotalUnreadResponse
from ...services.conversation_service import ConversationService
from ...services.messaging import create_sse_stream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages-v1"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get(
    "/stream",
    responses={
        200: {"description": "SSE stream established for user's inbox"},
        401: {"description": "Not authenticated"},
    },
)
async def stream_user_messages(
    request: Request,
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> EventSourceResponse:
    """
    SSE endpoint for real-time message streaming - per-user inbox.

    Supports Last-Event-ID header - when reconnecting, the client
    automatically sends the last received message ID, and the server
    sends any missed messages from the database first.
    """
    last_event_id = request.headers.get("Last-Event-ID")

    missed: List[MessageRecord] = []
    if last_event_id and is_valid_ulid(last_event_id):
        logger.info(
            "[SSE] Client reconnecting with Last-Event-ID",
            extra={"user_id": current_user_id, "last_event_id": last_event_id},
        )
        missed = await asyncio.to_thread(
            service.get_missed_messages, current_user_id, last_event_id
        )
    elif last_event_id:
        logger.warning(
            "[SSE] Ignoring malformed Last-Event-ID",
            extra={"user_id": current_user_id, "last_event_id": last_event_id},
        )

    # The stream is DB-free; don't hold a pooled connection for its lifetime
    service.release_session()

    return EventSourceResponse(
        create_sse_stream(current_user_id, missed),
        headers=SSE_HEADERS,
        media_type="text/event-stream",
    )


@router.get("/unread-count", response_model=TotalUnreadResponse)
async def get_total_unread(
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> TotalUnreadResponse:
    """Unread messages addressed to the caller across all conversations."""
    unread = await asyncio.to_thread(service.get_total_unread, current_user_id)
    return TotalUnreadResponse(unread_count=unread)
