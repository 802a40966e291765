# backend/marketchat/repositories/message_repository.py
"""
Message Repository for the messaging core.

Implements all data access operations for message management,
including keyset pagination, read stamping and unread aggregation.
"""

from datetime import datetime
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ..core.exceptions import RepositoryException
from ..models.message import MESSAGE_TYPE_TEXT, Message
from ..models.types import utc_now
from .base_repository import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """
    Repository for message data access.

    Ordering everywhere is (created_at, id) ascending, oldest first.
    """

    def __init__(self, db: Session):
        """Initialize with Message model."""
        super().__init__(db, Message)
        self.logger = logging.getLogger(__name__)

    def create_message(
        self,
        *,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        created_at: datetime,
        client_token: Optional[str] = None,
    ) -> Message:
        """
        Insert a text message with read_at unset.

        Does not commit. IntegrityError on the client token constraint is
        propagated so the caller can resolve the duplicate.
        """
        message = self.create(
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            message_type=MESSAGE_TYPE_TEXT,
            created_at=created_at,
            read_at=None,
            client_token=client_token,
        )
        self.logger.info(
            f"Created message {message.id} in conversation {conversation_id}"
        )
        return message

    def find_by_client_token(
        self, conversation_id: str, sender_id: str, client_token: str
    ) -> Optional[Message]:
        """Find a previously accepted send by its idempotency token."""
        return self.find_one_by(
            conversation_id=conversation_id,
            sender_id=sender_id,
            client_token=client_token,
        )

    def find_by_conversation(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        after: Optional[Message] = None,
    ) -> List[Message]:
        """
        Find messages for a conversation, oldest first.

        Args:
            conversation_id: ID of the conversation
            limit: Maximum number of messages to return (None for all)
            after: Keyset anchor; only messages strictly after it are returned

        Returns:
            List of messages ordered by (created_at, id)
        """
        query = self.db.query(Message).filter(Message.conversation_id == conversation_id)
        if after is not None:
            query = query.filter(self._after_clause(after.created_at, str(after.id)))
        query = query.order_by(Message.created_at.asc(), Message.id.asc())
        if limit is not None:
            query = query.limit(limit)
        return self._execute_query(query)

    def get_messages_after_id_for_receiver(
        self, receiver_id: str, after_message_id: str, limit: int = 100
    ) -> List[Message]:
        """
        Get messages addressed to a user that were sent after a given message.

        Used for SSE catch-up. The anchor is resolved to its (created_at, id)
        position; an unknown anchor yields no catch-up.

        Args:
            receiver_id: The subscriber's user ID
            after_message_id: Last-Event-ID (message ULID)
            limit: Maximum messages to return
        """
        anchor = self.get_by_id(after_message_id)
        if anchor is None:
            return []

        query = (
            self.db.query(Message)
            .filter(
                Message.receiver_id == receiver_id,
                self._after_clause(anchor.created_at, str(anchor.id)),
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(limit)
        )
        return self._execute_query(query)

    def mark_conversation_read(self, conversation_id: str, viewer_id: str) -> int:
        """
        Stamp read_at on every unread message addressed to the viewer.

        A single conditional UPDATE, so read_at is set at most once per
        message even under concurrent calls.

        Returns:
            Number of messages marked as read
        """
        try:
            result = self.db.execute(
                update(Message)
                .where(
                    Message.conversation_id == conversation_id,
                    Message.receiver_id == viewer_id,
                    Message.read_at.is_(None),
                )
                .values(read_at=utc_now())
                .execution_options(synchronize_session="evaluate")
            )
            count = int(result.rowcount or 0)
            self.logger.info(f"Marked {count} messages as read for user {viewer_id}")
            return count
        except SQLAlchemyError as e:
            self.logger.error(f"Error marking messages as read: {str(e)}")
            raise RepositoryException(f"Failed to mark messages as read: {str(e)}")

    def count_unread(self, conversation_id: str, viewer_id: str) -> int:
        """Count unread messages addressed to the viewer in one conversation."""
        query = self.db.query(func.count(Message.id)).filter(
            and_(
                Message.conversation_id == conversation_id,
                Message.receiver_id == viewer_id,
                Message.read_at.is_(None),
            )
        )
        return int(self._execute_scalar(query) or 0)

    def count_unread_by_conversation(
        self, conversation_ids: Iterable[str], viewer_id: str
    ) -> Dict[str, int]:
        """
        Unread counts for many conversations in one grouped query.

        Conversations without unread messages are absent from the result.
        """
        ids = list(conversation_ids)
        if not ids:
            return {}
        try:
            rows = (
                self.db.query(Message.conversation_id, func.count(Message.id))
                .filter(
                    Message.conversation_id.in_(ids),
                    Message.receiver_id == viewer_id,
                    Message.read_at.is_(None),
                )
                .group_by(Message.conversation_id)
                .all()
            )
            return {str(conversation_id): int(count) for conversation_id, count in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting unread messages: {str(e)}")
            raise RepositoryException(f"Failed to count unread messages: {str(e)}")

    def get_unread_count_for_user(self, user_id: str) -> int:
        """
        Get total unread message count for a user.

        Args:
            user_id: ID of the user

        Returns:
            Total number of unread messages
        """
        query = self.db.query(func.count(Message.id)).filter(
            Message.receiver_id == user_id,
            Message.read_at.is_(None),
        )
        return int(self._execute_scalar(query) or 0)

    @staticmethod
    def _after_clause(created_at: datetime, message_id: str) -> ColumnElement[bool]:
        return or_(
            Message.created_at > created_at,
            and_(Message.created_at == created_at, Message.id > message_id),
        )
