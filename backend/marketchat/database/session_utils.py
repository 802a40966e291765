"""
Dialect lookup for sessions.

Repositories use it to choose dialect-native statements (upserts) and
fall back to portable SQL elsewhere.
"""

from sqlalchemy.orm import Session


def get_dialect_name(session: Session) -> str:
    """Name of the dialect behind the session's engine ("postgresql", "sqlite", ...)."""
    return session.get_bind().dialect.name
