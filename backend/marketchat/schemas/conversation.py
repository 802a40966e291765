# backend/marketchat/schemas/conversation.py
"""
Pydantic schemas for conversations and messages.

Records (suffix Record/Summary) are what the service layer returns; the
Request/Response models are the HTTP payloads built on top of them.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import RecordModel, StrictModel
from .profile import UserRole


class ConversationRecord(RecordModel):
    """A two-party conversation with its last-message summary."""

    id: str
    participant_a_id: str
    participant_b_id: str
    created_at: datetime
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    last_message_id: Optional[str] = None
    last_message_sender_id: Optional[str] = None


class MessageRecord(RecordModel):
    """A persisted message as confirmed by the server."""

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    message_type: str = "text"
    created_at: datetime
    read_at: Optional[datetime] = None
    client_token: Optional[str] = None


class ParticipantSummary(RecordModel):
    """The other participant as shown in a conversation list."""

    id: str
    display_name: str
    avatar_ref: Optional[str] = None
    role: UserRole = "customer"
    is_online: bool = False
    last_seen: Optional[datetime] = None


class ConversationSummary(RecordModel):
    """Single conversation in a user's inbox list."""

    id: str
    other_user: ParticipantSummary
    created_at: datetime
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    last_message_sender_id: Optional[str] = None
    is_last_message_mine: bool = False
    unread_count: int = 0


# ---- HTTP payloads ----


class CreateConversationRequest(StrictModel):
    """Request to open (or fetch) the conversation with another user."""

    other_user_id: str = Field(..., min_length=1, max_length=64)


class CreateConversationResponse(StrictModel):
    """Response for POST /conversations."""

    conversation: ConversationRecord
    created: bool  # False if conversation already existed


class ConversationListResponse(StrictModel):
    """Response for GET /conversations."""

    conversations: List[ConversationSummary]


class SendMessageRequest(StrictModel):
    """
    Request to send a message.

    Length and blank checks are enforced by the service so every caller
    gets the same error codes.
    """

    content: str
    client_token: Optional[str] = Field(default=None, min_length=1, max_length=64)


class MessagesResponse(StrictModel):
    """Response for GET /conversations/{id}/messages."""

    messages: List[MessageRecord]


class MarkMessagesReadResponse(StrictModel):
    """Response for marking messages as read."""

    marked: int = Field(..., description="Number of messages marked as read")


class UnreadCountResponse(StrictModel):
    """Unread message count for one conversation."""

    conversation_id: str
    unread_count: int


class TotalUnreadResponse(StrictModel):
    """Unread message count across all of the caller's conversations."""

    unread_count: int
