"""User profile as produced by the external profile directory."""

from typing import Literal, Optional

from pydantic import Field

from .base import RecordModel

UserRole = Literal["customer", "artist", "admin"]


class UserProfile(RecordModel):
    """Display data for a marketplace user."""

    id: str
    display_name: str
    avatar_ref: Optional[str] = None
    role: UserRole = Field(default="customer")
