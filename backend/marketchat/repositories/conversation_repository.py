# backend/marketchat/repositories/conversation_repository.py
"""
Conversation Repository for per-user-pair messaging.

Provides data access methods for two-party conversations.
Follows the repository pattern with clean separation from business logic.
"""

from datetime import datetime
from typing import Optional, Sequence, Tuple, cast

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.conversation import Conversation, normalize_pair
from ..models.types import utc_now
from .base_repository import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """
    Repository for Conversation entity operations.

    Handles all database operations for conversations including:
    - Finding or creating conversations for user pairs
    - Listing conversations for a user
    - Advancing the last-message summary
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        super().__init__(db, Conversation)

    def find_by_pair(self, user_a_id: str, user_b_id: str) -> Optional[Conversation]:
        """
        Find the conversation between two users, in either argument order.

        The pair is stored normalized, so a single equality lookup on
        (participant_a_id, participant_b_id) is enough.

        Args:
            user_a_id: One participant's user ID
            user_b_id: The other participant's user ID

        Returns:
            The conversation if found, None otherwise
        """
        low, high = normalize_pair(user_a_id, user_b_id)
        try:
            result = (
                self.db.query(Conversation)
                .filter(
                    Conversation.participant_a_id == low,
                    Conversation.participant_b_id == high,
                )
                .first()
            )
            return cast(Optional[Conversation], result)
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding conversation by pair: {str(e)}")
            raise RepositoryException(f"Failed to find conversation: {str(e)}")

    def get_or_create(self, user_a_id: str, user_b_id: str) -> Tuple[Conversation, bool]:
        """
        Get an existing conversation or create a new one.

        Idempotent and race-safe: the insert commits on its own, and a unique
        constraint violation means a concurrent caller created the row first,
        in which case the session is rolled back and the winner's row is
        returned. Callers must not have pending work in the session.

        Args:
            user_a_id: One participant's user ID
            user_b_id: The other participant's user ID

        Returns:
            Tuple of (conversation, created) where created is True if new
        """
        existing = self.find_by_pair(user_a_id, user_b_id)
        if existing:
            return existing, False

        low, high = normalize_pair(user_a_id, user_b_id)
        try:
            with self.transaction():
                conversation = self.create(participant_a_id=low, participant_b_id=high)
            return conversation, True
        except IntegrityError:
            # transaction() already rolled back
            self.logger.info(
                "Concurrent conversation creation for %s/%s, re-fetching", low, high
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create conversation: {str(e)}")

        winner = self.find_by_pair(low, high)
        if winner is None:
            raise RepositoryException(
                f"Conversation for {low}/{high} missing after unique constraint conflict"
            )
        return winner, False

    def get_for_update(self, conversation_id: str) -> Optional[Conversation]:
        """
        Load a conversation and lock its row until the transaction ends.

        Serializes concurrent sends into one conversation so each sees the
        previous send's last_message_at. Databases without row locks ignore
        FOR UPDATE.
        """
        try:
            result = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            return cast(Optional[Conversation], result)
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking conversation {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock conversation: {str(e)}")

    def find_for_user(self, user_id: str) -> Sequence[Conversation]:
        """
        Find all conversations where a user is a participant.

        Returns:
            Conversations ordered by coalesce(last_message_at, created_at) desc,
            ties broken by id desc
        """
        query = (
            self.db.query(Conversation)
            .filter(
                or_(
                    Conversation.participant_a_id == user_id,
                    Conversation.participant_b_id == user_id,
                )
            )
            .populate_existing()
            .order_by(
                func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(),
                Conversation.id.desc(),
            )
        )
        return self._execute_query(query)

    def advance_summary(
        self,
        conversation_id: str,
        *,
        message_id: str,
        sender_id: str,
        sent_at: datetime,
        preview: str,
    ) -> bool:
        """
        Move the last-message summary forward to the given message.

        The UPDATE only applies when sent_at is not older than the stored
        last_message_at, so an out-of-order commit can never rewind the
        summary.

        Returns:
            True if the summary changed
        """
        try:
            result = self.db.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    or_(
                        Conversation.last_message_at.is_(None),
                        Conversation.last_message_at <= sent_at,
                    ),
                )
                .values(
                    last_message_at=sent_at,
                    last_message_preview=preview,
                    last_message_id=message_id,
                    last_message_sender_id=sender_id,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session="fetch")
            )
            # A loaded instance must not keep serving the old summary
            loaded = self.db.identity_map.get(self.db.identity_key(Conversation, conversation_id))
            if loaded is not None:
                self.db.expire(loaded)
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating summary for {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to update conversation summary: {str(e)}")
