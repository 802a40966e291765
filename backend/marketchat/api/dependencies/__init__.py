"""
Dependency providers for routes.

- auth: caller identity from the gateway header
- services: service factories wired to the request's session
"""

from .auth import get_current_user_id
from .services import get_conversation_service, get_profile_directory

__all__ = ["get_current_user_id", "get_conversation_service", "get_profile_directory"]
