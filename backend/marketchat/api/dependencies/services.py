# backend/marketchat/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ...core.exceptions import ServiceUnavailableException
from ...database import get_db
from ...services.conversation_service import ConversationService
from ...services.messaging.publisher import message_publisher
from ...services.profile_directory import ProfileDirectory

logger = logging.getLogger(__name__)


def get_profile_directory(request: Request) -> ProfileDirectory:
    """Profile directory configured on the application at startup."""
    directory = getattr(request.app.state, "profile_directory", None)
    if directory is None:
        logger.error("[DEPENDENCIES] No profile directory configured")
        raise ServiceUnavailableException(
            "Profile directory not configured", code="DIRECTORY_UNAVAILABLE"
        )
    return directory


def get_conversation_service(
    db: Session = Depends(get_db),
    profile_directory: ProfileDirectory = Depends(get_profile_directory),
) -> ConversationService:
    """Dependency for ConversationService."""
    return ConversationService(db, profile_directory, publisher=message_publisher)
