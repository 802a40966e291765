# backend/marketchat/routes/v1/presence.py
"""
Presence routes - API v1

Endpoints:
    PUT /presence              -> Report the caller going online or offline
    GET /presence/{user_id}    -> Current presence of a user
"""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.params import Path

from ...api.dependencies import get_conversation_service, get_current_user_id
from ...schemas.presence import PresenceRecord, UpdatePresenceRequest
from ...services.conversation_service import ConversationService

router = APIRouter(tags=["presence-v1"])


@router.put("", response_model=PresenceRecord)
async def update_presence(
    request: UpdatePresenceRequest,
    current_user_id: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> PresenceRecord:
    """Report an app lifecycle change (foreground/background, connect/disconnect)."""
    return await asyncio.to_thread(service.update_user_status, current_user_id, request.is_online)


@router.get("/{user_id}", response_model=PresenceRecord)
async def get_presence(
    user_id: str = Path(..., min_length=1, max_length=64),
    _: str = Depends(get_current_user_id),
    service: ConversationService = Depends(get_conversation_service),
) -> PresenceRecord:
    """Presence of any user; users who never reported are offline."""
    return await asyncio.to_thread(service.get_user_status, user_id)
