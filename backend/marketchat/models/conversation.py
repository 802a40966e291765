# backend/marketchat/models/conversation.py
"""
Conversation model for per-user-pair messaging.

Each unordered pair of users has exactly one conversation. The pair is
stored normalized (participant_a_id < participant_b_id) and guarded by a
unique constraint, so concurrent first contact from both sides collapses
onto a single row.

Design decisions:
- Conversations are created lazily on first contact and never deleted
- Only message sends mutate a conversation (the denormalized summary)
- The summary (last_message_*) lets listings skip a join on messages
"""

from typing import Tuple

from sqlalchemy import CheckConstraint, Column, Index, String, Text, UniqueConstraint

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utc_now


def normalize_pair(user_a_id: str, user_b_id: str) -> Tuple[str, str]:
    """Return the pair ordered so the lower id comes first."""
    return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)


class Conversation(Base):
    """
    Conversation between exactly two users.

    Attributes:
        id: ULID primary key
        participant_a_id: Lower of the two participant ids
        participant_b_id: Higher of the two participant ids
        created_at: When the conversation was created (immutable)
        updated_at: When the summary last changed
        last_message_at: When the most recent message was sent
        last_message_preview: Truncated content of the most recent message
        last_message_id: ID of the most recent message
        last_message_sender_id: Sender of the most recent message
    """

    __tablename__ = "conversations"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    participant_a_id = Column(String(64), nullable=False)
    participant_b_id = Column(String(64), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now)
    last_message_at = Column(UTCDateTime(), nullable=True)
    last_message_preview = Column(Text, nullable=True)
    last_message_id = Column(String(26), nullable=True)
    last_message_sender_id = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("participant_a_id", "participant_b_id", name="uq_conversations_pair"),
        CheckConstraint("participant_a_id < participant_b_id", name="ck_conversations_pair_order"),
        Index("idx_conversations_participant_a", "participant_a_id"),
        Index("idx_conversations_participant_b", "participant_b_id"),
        Index("idx_conversations_last_message", "last_message_at"),
        {
            "comment": "One conversation per unordered user pair",
        },
    )

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, a={self.participant_a_id}, b={self.participant_b_id})>"
        )

    @property
    def participant_ids(self) -> Tuple[str, str]:
        return (str(self.participant_a_id), str(self.participant_b_id))

    def get_other_user_id(self, current_user_id: str) -> str:
        """
        Get the ID of the other participant in the conversation.

        Args:
            current_user_id: The ID of the current user

        Returns:
            The ID of the other participant
        """
        if current_user_id == self.participant_a_id:
            return str(self.participant_b_id)
        return str(self.participant_a_id)

    def is_participant(self, user_id: str) -> bool:
        """Check if a user is one of the two participants."""
        return user_id in (self.participant_a_id, self.participant_b_id)

    def has_participants(self, user_a_id: str, user_b_id: str) -> bool:
        """Check that {user_a_id, user_b_id} is exactly this conversation's pair."""
        return normalize_pair(user_a_id, user_b_id) == self.participant_ids
