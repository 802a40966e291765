# backend/marketchat/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import conversations, messages, presence

__all__ = ["conversations", "messages", "presence"]
