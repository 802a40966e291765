# backend/marketchat/routes/v1/conversations.py
"""
Conversations routes - API v1

Versioned conversation endpoints under /api/v1/conversations.
All business logic delegated to ConversationService.

Routes have ZERO direct DB access - all operations go through service layer.

Endpoints:
    GET /                               -> List (or search) the caller's conversations
    POST /                              -> Create/get the conversation with another user
    GET /{conversation_id}              -> Get conversation details
    GET /{conversation_id}/messages     -> Get messages, oldest first
    POST /{conversation_id}/messages    -> Send a message to the other participant
    POST /{conversation_id}/read        -> Mark messages addressed to the caller as read
    GET /{conversation_id}/unread       -> Unread count for the caller
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.params import Path

from ...api.dependencies import get_conversation_service, get_current_user_id
from ...schemas.conversation import (
    ConversationListResponse,
    ConversationRecord,
    CreateConversationRequest,
    CreateConversationResponse,
    MarkMessagesReadResponse,
    MessageRecord,
    MessagesResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from ...services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["conversations-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    q: Optional[str] = Query(None, max_length=200, description="Filter by name or last message"),
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    """
    List all conversations for the current user, most recent activity first.

    With `q`, only conversations whose other participant or last message
    matches are returned.
    """
    if q is not None:
        conversations = await asyncio.to_thread(service.search_conversations, current_user_id, q)
    else:
        conversations = await asyncio.to_thread(service.get_user_conversations, current_user_id)
    return ConversationListResponse(conversations=conversations)


@router.post("", response_model=CreateConversationResponse)
async def create_conversation(
    request: CreateConversationRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> CreateConversationResponse:
    """
    Create a conversation with another user.

    If the conversation already exists, returns the existing one.
    """
    conversation, created = await asyncio.to_thread(
        service.get_or_create_conversation_with_flag,
        current_user_id,
        request.other_user_id,
    )
    return CreateConversationResponse(conversation=conversation, created=created)


@router.get("/{conversation_id}", response_model=ConversationRecord)
async def get_conversation(
    conversation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationRecord:
    """Get a single conversation the caller takes part in."""
    return await asyncio.to_thread(service.get_conversation, conversation_id, current_user_id)


@router.get("/{conversation_id}/messages", response_model=MessagesResponse)
async def get_messages(
    conversation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    after: Optional[str] = Query(
        None, pattern=ULID_PATH_PATTERN, description="Only messages after this message ID"
    ),
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> MessagesResponse:
    """Get messages of a conversation in send order."""

    def _load() -> MessagesResponse:
        # Raises NotFound for non-participants before any message is read
        service.get_conversation(conversation_id, current_user_id)
        messages = service.get_conversation_messages(conversation_id, limit=limit, after_id=after)
        return MessagesResponse(messages=messages)

    return await asyncio.to_thread(_load)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageRecord,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    request: SendMessageRequest,
    conversation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> MessageRecord:
    """
    Send a message to the other participant.

    Retrying with the same client_token returns the original message.
    """

    def _send() -> MessageRecord:
        conversation = service.get_conversation(conversation_id, current_user_id)
        receiver_id = (
            conversation.participant_b_id
            if conversation.participant_a_id == current_user_id
            else conversation.participant_a_id
        )
        return service.send_message(
            conversation_id,
            current_user_id,
            receiver_id,
            request.content,
            client_token=request.client_token,
        )

    message = await asyncio.to_thread(_send)
    logger.debug(
        "[MESSAGES] Message sent",
        extra={"conversation_id": conversation_id, "message_id": message.id},
    )
    return message


@router.post("/{conversation_id}/read", response_model=MarkMessagesReadResponse)
async def mark_conversation_read(
    conversation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> MarkMessagesReadResponse:
    """Mark every unread message addressed to the caller as read."""

    def _mark() -> int:
        service.get_conversation(conversation_id, current_user_id)
        return service.mark_messages_as_read(conversation_id, current_user_id)

    marked = await asyncio.to_thread(_mark)
    return MarkMessagesReadResponse(marked=marked)


@router.get("/{conversation_id}/unread", response_model=UnreadCountResponse)
async def get_unread_count(
    conversation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> UnreadCountResponse:
    """Unread messages addressed to the caller in one conversation."""

    def _count() -> int:
        service.get_conversation(conversation_id, current_user_id)
        return service.get_unread_count(conversation_id, current_user_id)

    unread = await asyncio.to_thread(_count)
    return UnreadCountResponse(conversation_id=conversation_id, unread_count=unread)
