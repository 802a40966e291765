"""Schemas for presence tracking."""

from datetime import datetime
from typing import Optional

from .base import RecordModel, StrictModel


class PresenceRecord(RecordModel):
    """Online status for one user; last_seen is None until the user first goes offline."""

    user_id: str
    is_online: bool = False
    last_seen: Optional[datetime] = None


class UpdatePresenceRequest(StrictModel):
    """Request body for PUT /presence."""

    is_online: bool
