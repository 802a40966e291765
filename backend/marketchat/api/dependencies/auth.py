# backend/marketchat/api/dependencies/auth.py
"""
Caller identity.

Authentication happens upstream: the gateway verifies the session and
forwards the user id in X-User-Id. This service trusts that header.
"""

import logging

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


def get_current_user_id(
    x_user_id: str = Header(default="", alias=USER_ID_HEADER, max_length=64),
) -> str:
    """Return the authenticated caller's user id, or 401 when the header is missing."""
    user_id = x_user_id.strip()
    if not user_id:
        logger.warning("[AUTH] Request without %s header", USER_ID_HEADER)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing caller identity", "code": "UNAUTHENTICATED"},
        )
    return user_id
