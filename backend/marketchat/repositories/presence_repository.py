# backend/marketchat/repositories/presence_repository.py
"""
Presence Repository.

One row per user, written with a dialect-native upsert so concurrent status
calls for the same user never collide on the primary key.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, cast

from sqlalchemy import and_, case, literal, or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.presence import UserPresence
from ..models.types import UTCDateTime, utc_now
from .base_repository import BaseRepository

_UPSERT_DIALECTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class PresenceRepository(BaseRepository[UserPresence]):
    """Repository for user presence rows."""

    def __init__(self, db: Session):
        super().__init__(db, UserPresence)

    def get_for_users(self, user_ids: Iterable[str]) -> Dict[str, UserPresence]:
        """Load presence rows for many users in one query; users without a row are absent."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        query = self.db.query(UserPresence).filter(UserPresence.user_id.in_(ids))
        return {str(row.user_id): row for row in self._execute_query(query)}

    def upsert_status(
        self, user_id: str, is_online: bool, now: Optional[datetime] = None
    ) -> UserPresence:
        """
        Insert or update a user's presence.

        Going online only flips is_online. Going offline from online stamps
        last_seen with max(now, last_seen); a repeated offline call leaves it
        alone. Does not commit.
        """
        now = now or utc_now()
        try:
            insert_fn = _UPSERT_DIALECTS.get(self.dialect_name)
            if insert_fn is None:
                self._upsert_with_lock(user_id, is_online, now)
            else:
                self._upsert_native(insert_fn, user_id, is_online, now)

            row = self.db.get(UserPresence, user_id, populate_existing=True)
            if row is None:
                raise RepositoryException(f"Presence row for {user_id} missing after upsert")
            return cast(UserPresence, row)
        except SQLAlchemyError as e:
            self.logger.error(f"Error upserting presence for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to update presence: {str(e)}")

    def _upsert_native(self, insert_fn: Any, user_id: str, is_online: bool, now: datetime) -> None:
        table = UserPresence.__table__
        stamp = literal(now, type_=UTCDateTime())
        stmt = insert_fn(table).values(
            user_id=user_id,
            is_online=is_online,
            last_seen=None if is_online else now,
            updated_at=now,
        )

        set_: Dict[str, Any] = {"is_online": is_online, "updated_at": stamp}
        if not is_online:
            set_["last_seen"] = case(
                (
                    and_(
                        table.c.is_online.is_(True),
                        or_(table.c.last_seen.is_(None), table.c.last_seen < stamp),
                    ),
                    stamp,
                ),
                else_=table.c.last_seen,
            )

        self.db.execute(stmt.on_conflict_do_update(index_elements=[table.c.user_id], set_=set_))

    def _upsert_with_lock(self, user_id: str, is_online: bool, now: datetime) -> None:
        row = (
            self.db.query(UserPresence)
            .filter(UserPresence.user_id == user_id)
            .with_for_update()
            .first()
        )
        if row is None:
            self.db.add(
                UserPresence(
                    user_id=user_id,
                    is_online=is_online,
                    last_seen=None if is_online else now,
                    updated_at=now,
                )
            )
        else:
            if not is_online and row.is_online:
                row.last_seen = now if row.last_seen is None else max(now, row.last_seen)
            row.is_online = is_online
            row.updated_at = now
        self.db.flush()
