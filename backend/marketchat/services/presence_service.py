# backend/marketchat/services/presence_service.py
"""
Presence tracking.

Best-effort online/offline status, updated when clients report lifecycle
changes. There is no heartbeat: a client that disappears without reporting
stays online until its next offline call.
"""

from typing import Dict, Iterable

from sqlalchemy.orm import Session

from ..repositories.factory import RepositoryFactory
from ..schemas.presence import PresenceRecord
from .base import BaseService


class PresenceService(BaseService):
    """Reads and writes user presence rows."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.presence_repository = RepositoryFactory.create_presence_repository(db)

    @BaseService.measure_operation("update_user_status")
    def update_user_status(self, user_id: str, is_online: bool) -> PresenceRecord:
        """
        Record a user going online or offline.

        last_seen never moves backwards and is only stamped when the user
        goes offline after being online (or on their first offline report).
        """
        with self.transaction():
            row = self.presence_repository.upsert_status(user_id, is_online)
            record = PresenceRecord.model_validate(row)

        self.logger.info(
            f"[PRESENCE] {user_id} is now {'online' if is_online else 'offline'}",
            extra={"user_id": user_id, "is_online": is_online},
        )
        return record

    @BaseService.measure_operation("get_status")
    def get_status(self, user_id: str) -> PresenceRecord:
        """Current presence for a user; offline with no last_seen if never reported."""
        with self.store_access():
            row = self.presence_repository.get_by_id(user_id)
        if row is None:
            return PresenceRecord(user_id=user_id)
        return PresenceRecord.model_validate(row)

    @BaseService.measure_operation("get_statuses")
    def get_statuses(self, user_ids: Iterable[str]) -> Dict[str, PresenceRecord]:
        """Presence for many users in one query; every requested id gets an entry."""
        ids = list(dict.fromkeys(user_ids))
        with self.store_access():
            rows = self.presence_repository.get_for_users(ids)
        return {
            uid: (
                PresenceRecord.model_validate(rows[uid])
                if uid in rows
                else PresenceRecord(user_id=uid)
            )
            for uid in ids
        }
