"""
Presence model: one row per user, upserted on every status change.
"""

from sqlalchemy import Boolean, Column, String

from ..database import Base
from .types import UTCDateTime, utc_now


class UserPresence(Base):
    """
    Online/offline status for a user.

    last_seen marks the last time the user stopped being online; it is
    left untouched while the user is online.
    """

    __tablename__ = "user_presence"

    user_id = Column(String(64), primary_key=True)
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(UTCDateTime(), nullable=True)
    updated_at = Column(UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<UserPresence(user_id={self.user_id}, online={self.is_online})>"
