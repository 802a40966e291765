# backend/marketchat/repositories/factory.py
"""
Repository Factory for the messaging core

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .conversation_repository import ConversationRepository
    from .message_repository import MessageRepository
    from .presence_repository import PresenceRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_conversation_repository(db: Session) -> "ConversationRepository":
        """Create repository for conversation operations."""
        from .conversation_repository import ConversationRepository

        return ConversationRepository(db)

    @staticmethod
    def create_message_repository(db: Session) -> "MessageRepository":
        """Create repository for message operations."""
        from .message_repository import MessageRepository

        return MessageRepository(db)

    @staticmethod
    def create_presence_repository(db: Session) -> "PresenceRepository":
        """Create repository for presence tracking."""
        from .presence_repository import PresenceRepository

        return PresenceRepository(db)
