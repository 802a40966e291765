"""
Repository layer for the messaging core.

Repositories own all SQL; services own transactions.
"""

from .base_repository import BaseRepository
from .conversation_repository import ConversationRepository
from .factory import RepositoryFactory
from .message_repository import MessageRepository
from .presence_repository import PresenceRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "MessageRepository",
    "PresenceRepository",
    "RepositoryFactory",
]
