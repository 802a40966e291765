# backend/marketchat/services/unread_service.py
"""
Unread accounting.

Unread counts are always derived from message read state; nothing is
cached, so a count can never drift from the messages it describes.
"""

from typing import Dict, Iterable

from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from .base import BaseService


class UnreadService(BaseService):
    """Count queries over unread messages."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.message_repository = RepositoryFactory.create_message_repository(db)

    @BaseService.measure_operation("count_for_conversation")
    def count_for_conversation(self, conversation_id: str, viewer_id: str) -> int:
        with self.store_access():
            return self.message_repository.count_unread(conversation_id, viewer_id)

    @BaseService.measure_operation("counts_for_conversations")
    def counts_for_conversations(
        self, conversation_ids: Iterable[str], viewer_id: str
    ) -> Dict[str, int]:
        """Unread counts keyed by conversation id; ids with nothing unread map to 0."""
        ids = list(conversation_ids)
        with self.store_access():
            counts = self.message_repository.count_unread_by_conversation(ids, viewer_id)
        return {cid: counts.get(cid, 0) for cid in ids}

    @BaseService.measure_operation("total_for_user")
    def total_for_user(self, viewer_id: str) -> int:
        with self.store_access():
            return self.message_repository.get_unread_count_for_user(viewer_id)
