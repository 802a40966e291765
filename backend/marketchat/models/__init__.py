"""
Database models for the messaging core.

- Conversation: one row per unordered user pair, with a last-message summary
- Message: append-only text messages with per-message read state
- UserPresence: online/offline status and last-seen timestamp
"""

from .conversation import Conversation, normalize_pair
from .message import MESSAGE_TYPE_TEXT, Message
from .presence import UserPresence

__all__ = [
    "Conversation",
    "Message",
    "MESSAGE_TYPE_TEXT",
    "UserPresence",
    "normalize_pair",
]
