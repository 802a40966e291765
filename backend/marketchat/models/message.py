# backend/marketchat/models/message.py
"""
Message model for the chat system.

Represents one text message from one conversation participant to the
other. Messages are append-only: the only mutation is read_at moving from
NULL to a timestamp, exactly once.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String, Text, UniqueConstraint

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now

MESSAGE_TYPE_TEXT = "text"


class Message(Base):
    """
    Message within a two-party conversation.

    Ordering within a conversation is (created_at, id); created_at is
    assigned by the service while the conversation row is locked.
    """

    __tablename__ = "messages"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    conversation_id = Column(
        String(26), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(String(64), nullable=False)
    receiver_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(String(16), nullable=False, default=MESSAGE_TYPE_TEXT)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    read_at = Column(UTCDateTime(), nullable=True)
    # Caller-generated idempotency token for retried sends
    client_token = Column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="ck_messages_distinct_parties"),
        UniqueConstraint(
            "conversation_id", "sender_id", "client_token", name="uq_messages_client_token"
        ),
        Index("idx_messages_conversation_order", "conversation_id", "created_at", "id"),
        Index("idx_messages_receiver_unread", "receiver_id", "read_at"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation={self.conversation_id}, sender={self.sender_id})>"
