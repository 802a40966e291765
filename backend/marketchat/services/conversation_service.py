# backend/marketchat/services/conversation_service.py
"""
Conversation Service for per-user-pair messaging.

The single entry point for messaging operations: conversation lookup and
creation, sending, reading, read-state, unread counts, listing/search and
presence. Returns typed records only; ORM rows never leave this layer.

Send path:
    lock conversation row -> assign created_at -> insert message
    -> advance summary -> commit -> publish new_message (fire-and-forget)
"""

from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException, ServiceUnavailableException, ValidationException
from ..models.conversation import Conversation
from ..models.message import Message
from ..models.types import utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.conversation import (
    ConversationRecord,
    ConversationSummary,
    MessageRecord,
    ParticipantSummary,
)
from ..schemas.presence import PresenceRecord
from ..schemas.profile import UserProfile
from .base import BaseService
from .messaging.publisher import MessagePublisher, message_publisher
from .presence_service import PresenceService
from .profile_directory import ProfileDirectory
from .unread_service import UnreadService

SAME_PARTICIPANT = "SAME_PARTICIPANT"
EMPTY_CONTENT = "EMPTY_CONTENT"
CONTENT_TOO_LONG = "CONTENT_TOO_LONG"
CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
PARTICIPANT_MISMATCH = "PARTICIPANT_MISMATCH"
MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
INVALID_LIMIT = "INVALID_LIMIT"

ORDERING_STEP = timedelta(microseconds=1)
PREVIEW_ELLIPSIS = "..."


def build_preview(content: str, length: Optional[int] = None) -> str:
    """Truncate content for last_message_preview, marking truncation with an ellipsis."""
    limit = length or settings.message_preview_length
    if len(content) <= limit:
        return content
    return content[:limit] + PREVIEW_ELLIPSIS


def next_message_timestamp(
    last_message_at: Optional[datetime], now: Optional[datetime] = None
) -> datetime:
    """created_at for a new message: now, bumped past the previous message if needed."""
    now = now or utc_now()
    if last_message_at is not None and now <= last_message_at:
        return last_message_at + ORDERING_STEP
    return now


class ConversationService(BaseService):
    """
    Service for managing conversations and their messages.

    One instance per unit of work; the session is not shared across threads.
    """

    def __init__(
        self,
        db: Session,
        profile_directory: ProfileDirectory,
        publisher: Optional[MessagePublisher] = None,
    ):
        """
        Initialize the service.

        Args:
            db: Database session
            profile_directory: Resolves user ids to profiles
            publisher: Fan-out hook (defaults to the shared Broadcaster publisher)
        """
        super().__init__(db)
        self.profile_directory = profile_directory
        self.publisher: MessagePublisher = publisher or message_publisher
        self.conversation_repository = RepositoryFactory.create_conversation_repository(db)
        self.message_repository = RepositoryFactory.create_message_repository(db)
        self.unread_service = UnreadService(db)
        self.presence_service = PresenceService(db)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_or_create_conversation")
    def get_or_create_conversation(self, user_a_id: str, user_b_id: str) -> ConversationRecord:
        """
        Get the unique conversation between two users, creating it on first contact.

        Raises:
            ValidationException: ids are equal or blank
            NotFoundException: either user is unknown to the directory
            ServiceUnavailableException: the store failed
        """
        record, _ = self.get_or_create_conversation_with_flag(user_a_id, user_b_id)
        return record

    @BaseService.measure_operation("get_or_create_conversation_with_flag")
    def get_or_create_conversation_with_flag(
        self, user_a_id: str, user_b_id: str
    ) -> Tuple[ConversationRecord, bool]:
        """Same as get_or_create_conversation, also reporting whether it was created."""
        if not user_a_id or not user_b_id or user_a_id == user_b_id:
            raise ValidationException(
                "A conversation needs two distinct participants",
                code=SAME_PARTICIPANT,
                details={"user_a_id": user_a_id, "user_b_id": user_b_id},
            )

        self.profile_directory.resolve_user(user_a_id)
        self.profile_directory.resolve_user(user_b_id)

        with self.store_access():
            conversation, created = self.conversation_repository.get_or_create(
                user_a_id, user_b_id
            )
            record = ConversationRecord.model_validate(conversation)

        if created:
            self.log_operation(
                "conversation_created",
                conversation_id=record.id,
                participant_a_id=record.participant_a_id,
                participant_b_id=record.participant_b_id,
            )
        return record, created

    @BaseService.measure_operation("get_conversation")
    def get_conversation(
        self, conversation_id: str, viewer_id: Optional[str] = None
    ) -> ConversationRecord:
        """
        Get a conversation by id.

        When viewer_id is given, a non-participant gets NotFoundException as
        if the conversation did not exist.
        """
        with self.store_access():
            conversation = self.conversation_repository.get_by_id(conversation_id)
        if conversation is None or (
            viewer_id is not None and not conversation.is_participant(viewer_id)
        ):
            raise self._conversation_not_found(conversation_id)
        return ConversationRecord.model_validate(conversation)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @BaseService.measure_operation("send_message")
    def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        client_token: Optional[str] = None,
    ) -> MessageRecord:
        """
        Append a message and publish it to the receiver.

        A retry carrying the same client_token returns the original message
        without inserting or publishing again.

        Raises:
            ValidationException: blank or oversized content, sender == receiver
            NotFoundException: unknown conversation or participant mismatch
            ServiceUnavailableException: the store failed; nothing was published
        """
        text = (content or "").strip()
        if not text:
            raise ValidationException("Message content cannot be empty", code=EMPTY_CONTENT)
        if len(text) > settings.max_message_length:
            raise ValidationException(
                f"Message content exceeds {settings.max_message_length} characters",
                code=CONTENT_TOO_LONG,
                details={"max_length": settings.max_message_length, "length": len(text)},
            )
        if sender_id == receiver_id:
            raise ValidationException(
                "Sender and receiver must be different users", code=SAME_PARTICIPANT
            )

        try:
            with self.transaction():
                record, created = self._append_message(
                    conversation_id, sender_id, receiver_id, text, client_token
                )
        except ServiceUnavailableException as exc:
            # A concurrent retry with the same token won the unique constraint
            if not client_token or not isinstance(exc.__cause__, IntegrityError):
                raise
            with self.store_access():
                existing = self.message_repository.find_by_client_token(
                    conversation_id, sender_id, client_token
                )
            if existing is None:
                raise
            record, created = MessageRecord.model_validate(existing), False

        if not created:
            self.logger.info(
                f"Duplicate send for client token {client_token}, returning {record.id}",
                extra={"conversation_id": conversation_id, "message_id": record.id},
            )
            self._record_send("duplicate")
            return record

        self._record_send("created")
        self._publish(record)
        return record

    def _append_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        text: str,
        client_token: Optional[str],
    ) -> Tuple[MessageRecord, bool]:
        conversation = self.conversation_repository.get_for_update(conversation_id)
        if conversation is None:
            raise self._conversation_not_found(conversation_id)
        if not conversation.has_participants(sender_id, receiver_id):
            raise NotFoundException(
                "Sender and receiver are not the participants of this conversation",
                code=PARTICIPANT_MISMATCH,
                details={"conversation_id": conversation_id},
            )

        if client_token:
            existing = self.message_repository.find_by_client_token(
                conversation_id, sender_id, client_token
            )
            if existing is not None:
                return MessageRecord.model_validate(existing), False

        created_at = next_message_timestamp(conversation.last_message_at)
        message = self.message_repository.create_message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=text,
            created_at=created_at,
            client_token=client_token,
        )
        self.conversation_repository.advance_summary(
            conversation_id,
            message_id=str(message.id),
            sender_id=sender_id,
            sent_at=created_at,
            preview=build_preview(text),
        )
        return MessageRecord.model_validate(message), True

    def _publish(self, record: MessageRecord) -> None:
        try:
            self.publisher.publish_new_message(record)
        except Exception as e:
            # The message is committed; live delivery is best-effort
            self.logger.error(f"Publishing message {record.id} failed: {e}", exc_info=True)

    def _record_send(self, outcome: str) -> None:
        prometheus_metrics.inc_messages_sent(outcome)

    @BaseService.measure_operation("get_conversation_messages")
    def get_conversation_messages(
        self,
        conversation_id: str,
        *,
        limit: Optional[int] = None,
        after_id: Optional[str] = None,
    ) -> List[MessageRecord]:
        """
        Messages of a conversation, oldest first, ordered by (created_at, id).

        Args:
            conversation_id: ID of the conversation
            limit: Maximum number of messages (None for all)
            after_id: Only return messages after this message

        Raises:
            NotFoundException: unknown conversation, or after_id not in it
        """
        if limit is not None and limit < 1:
            raise ValidationException("limit must be a positive integer", code=INVALID_LIMIT)

        with self.store_access():
            self._require_conversation(conversation_id)
            anchor = self._resolve_anchor(conversation_id, after_id) if after_id else None
            rows = self.message_repository.find_by_conversation(
                conversation_id, limit=limit, after=anchor
            )
            return [MessageRecord.model_validate(row) for row in rows]

    def iter_conversation_messages(
        self, conversation_id: str, batch_size: Optional[int] = None
    ) -> Iterator[MessageRecord]:
        """
        Lazily stream every message of a conversation, oldest first.

        Pages with a (created_at, id) keyset cursor, so memory stays bounded
        by batch_size. Each call starts from the first message again.
        """
        size = batch_size or settings.message_page_size
        if size < 1:
            raise ValidationException("batch_size must be a positive integer", code=INVALID_LIMIT)

        with self.store_access():
            self._require_conversation(conversation_id)

        anchor: Optional[Message] = None
        while True:
            rows = self._fetch_message_page(conversation_id, size, anchor)
            for row in rows:
                yield MessageRecord.model_validate(row)
            if len(rows) < size:
                return
            anchor = rows[-1]

    @BaseService.measure_operation("fetch_message_page")
    def _fetch_message_page(
        self, conversation_id: str, size: int, anchor: Optional[Message]
    ) -> Sequence[Message]:
        with self.store_access():
            return self.message_repository.find_by_conversation(
                conversation_id, limit=size, after=anchor
            )

    @BaseService.measure_operation("get_missed_messages")
    def get_missed_messages(
        self, user_id: str, after_message_id: str, limit: Optional[int] = None
    ) -> List[MessageRecord]:
        """Messages addressed to user_id sent after the given message (SSE catch-up)."""
        with self.store_access():
            rows = self.message_repository.get_messages_after_id_for_receiver(
                user_id, after_message_id, limit or settings.catch_up_limit
            )
            return [MessageRecord.model_validate(row) for row in rows]

    @BaseService.measure_operation("mark_messages_as_read")
    def mark_messages_as_read(self, conversation_id: str, viewer_id: str) -> int:
        """
        Mark every unread message addressed to the viewer as read.

        Idempotent: a second call stamps nothing and returns 0.

        Returns:
            Number of messages marked as read
        """
        with self.transaction():
            self._require_conversation(conversation_id)
            marked = self.message_repository.mark_conversation_read(conversation_id, viewer_id)

        if marked:
            self.log_operation(
                "messages_read",
                conversation_id=conversation_id,
                viewer_id=viewer_id,
                count=marked,
            )
        return marked

    # ------------------------------------------------------------------
    # Listing and search
    # ------------------------------------------------------------------

    @BaseService.measure_operation("get_user_conversations")
    def get_user_conversations(self, user_id: str) -> List[ConversationSummary]:
        """
        All conversations of a user, most recent activity first.

        Each entry carries the other participant's profile and presence and
        the user's unread count. Conversations whose other participant the
        directory no longer knows are left out.
        """
        with self.store_access():
            conversations = list(self.conversation_repository.find_for_user(user_id))
        if not conversations:
            return []

        other_ids = [c.get_other_user_id(user_id) for c in conversations]
        profiles = self.profile_directory.resolve_users(other_ids)
        unread = self.unread_service.counts_for_conversations(
            [str(c.id) for c in conversations], user_id
        )
        presence = self.presence_service.get_statuses(other_ids)

        summaries: List[ConversationSummary] = []
        for conversation, other_id in zip(conversations, other_ids):
            profile = profiles.get(other_id)
            if profile is None:
                self.logger.warning(
                    f"Skipping conversation {conversation.id}: participant {other_id} not found",
                    extra={"conversation_id": conversation.id, "user_id": user_id},
                )
                continue
            summaries.append(
                self._build_summary(
                    conversation,
                    user_id,
                    profile,
                    presence.get(other_id) or PresenceRecord(user_id=other_id),
                    unread.get(str(conversation.id), 0),
                )
            )
        return summaries

    @BaseService.measure_operation("search_conversations")
    def search_conversations(self, user_id: str, query: str) -> List[ConversationSummary]:
        """
        Conversations whose other participant's name or last message preview
        contains the query (case-insensitive). A blank query returns everything.
        """
        summaries = self.get_user_conversations(user_id)
        needle = (query or "").casefold()
        if not needle.strip():
            return summaries
        return [
            summary
            for summary in summaries
            if needle in summary.other_user.display_name.casefold()
            or needle in (summary.last_message_preview or "").casefold()
        ]

    @staticmethod
    def _build_summary(
        conversation: Conversation,
        user_id: str,
        profile: UserProfile,
        presence: PresenceRecord,
        unread_count: int,
    ) -> ConversationSummary:
        return ConversationSummary(
            id=str(conversation.id),
            other_user=ParticipantSummary(
                id=profile.id,
                display_name=profile.display_name,
                avatar_ref=profile.avatar_ref,
                role=profile.role,
                is_online=presence.is_online,
                last_seen=presence.last_seen,
            ),
            created_at=conversation.created_at,
            last_message_at=conversation.last_message_at,
            last_message_preview=conversation.last_message_preview,
            last_message_sender_id=conversation.last_message_sender_id,
            is_last_message_mine=conversation.last_message_sender_id == user_id,
            unread_count=unread_count,
        )

    # ------------------------------------------------------------------
    # Unread counts and presence
    # ------------------------------------------------------------------

    def get_unread_count(self, conversation_id: str, viewer_id: str) -> int:
        """Unread messages addressed to the viewer in one conversation."""
        return self.unread_service.count_for_conversation(conversation_id, viewer_id)

    def get_total_unread(self, viewer_id: str) -> int:
        """Unread messages addressed to the viewer across all conversations."""
        return self.unread_service.total_for_user(viewer_id)

    def update_user_status(self, user_id: str, is_online: bool) -> PresenceRecord:
        return self.presence_service.update_user_status(user_id, is_online)

    def get_user_status(self, user_id: str) -> PresenceRecord:
        return self.presence_service.get_status(user_id)

    def get_user_statuses(self, user_ids: Sequence[str]) -> Dict[str, PresenceRecord]:
        return self.presence_service.get_statuses(user_ids)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.conversation_repository.get_by_id(conversation_id)
        if conversation is None:
            raise self._conversation_not_found(conversation_id)
        return conversation

    def _resolve_anchor(self, conversation_id: str, message_id: str) -> Message:
        anchor = self.message_repository.get_by_id(message_id)
        if anchor is None or anchor.conversation_id != conversation_id:
            raise NotFoundException(
                f"Message {message_id} not found in conversation",
                code=MESSAGE_NOT_FOUND,
                details={"conversation_id": conversation_id, "message_id": message_id},
            )
        return anchor

    @staticmethod
    def _conversation_not_found(conversation_id: str) -> NotFoundException:
        return NotFoundException(
            f"Conversation {conversation_id} not found",
            code=CONVERSATION_NOT_FOUND,
            details={"conversation_id": conversation_id},
        )
