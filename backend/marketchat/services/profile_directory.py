# backend/marketchat/services/profile_directory.py
"""
Profile directory adapters.

The messaging core never owns user data: it resolves ids to display
profiles through a ProfileDirectory. Two implementations ship here:

- HttpProfileDirectory: talks to the user service over HTTP (httpx)
- InMemoryProfileDirectory: dict-backed, for embedding applications and tests
"""

import json
import logging
from typing import Any, Dict, Iterable, Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..core.config import settings
from ..core.exceptions import NotFoundException, ServiceUnavailableException
from ..schemas.profile import UserProfile

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "USER_NOT_FOUND"
DIRECTORY_UNAVAILABLE = "DIRECTORY_UNAVAILABLE"


class ProfileDirectory(Protocol):
    """Lookup of user profiles by id."""

    def resolve_user(self, user_id: str) -> UserProfile:
        """Return the profile or raise NotFoundException."""
        ...

    def resolve_users(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        """Return profiles keyed by id; unknown ids are omitted."""
        ...


def _user_not_found(user_id: str) -> NotFoundException:
    return NotFoundException(
        f"User {user_id} not found",
        code=USER_NOT_FOUND,
        details={"user_id": user_id},
    )


class InMemoryProfileDirectory:
    """Dict-backed directory."""

    def __init__(self, profiles: Optional[Iterable[UserProfile]] = None) -> None:
        self._profiles: Dict[str, UserProfile] = {}
        for profile in profiles or ():
            self.add(profile)

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.id] = profile

    def resolve_user(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise _user_not_found(user_id)
        return profile

    def resolve_users(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        return {uid: self._profiles[uid] for uid in user_ids if uid in self._profiles}


class HttpProfileDirectory:
    """
    Directory backed by the user service's REST API.

    GET {base_url}/users/{id} must return a JSON object with at least
    id and display_name. 404 maps to NotFoundException; transport errors,
    5xx responses and malformed bodies map to ServiceUnavailableException.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        resolved = base_url or settings.profile_directory_url
        if not resolved:
            raise ValueError("profile directory base URL must be configured")
        self._base_url = resolved.rstrip("/")
        self._timeout = timeout if timeout is not None else settings.profile_directory_timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def resolve_user(self, user_id: str) -> UserProfile:
        with self._client() as client:
            return self._fetch(client, user_id)

    def resolve_users(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        profiles: Dict[str, UserProfile] = {}
        with self._client() as client:
            for user_id in dict.fromkeys(user_ids):
                try:
                    profiles[user_id] = self._fetch(client, user_id)
                except NotFoundException:
                    logger.info("[PROFILES] Unknown user %s skipped", user_id)
        return profiles

    def _fetch(self, client: httpx.Client, user_id: str) -> UserProfile:
        path = f"/users/{quote(user_id, safe='')}"
        try:
            response = client.get(path)
        except httpx.RequestError as exc:
            logger.error("[PROFILES] Request failure for GET %s: %s", path, str(exc))
            raise ServiceUnavailableException(
                "Profile directory unreachable", code=DIRECTORY_UNAVAILABLE
            ) from exc

        if response.status_code == 404:
            raise _user_not_found(user_id)
        if response.status_code >= 400:
            logger.error(
                "[PROFILES] Directory error %s for GET %s: %s",
                response.status_code,
                path,
                response.text[:500],
            )
            raise ServiceUnavailableException(
                f"Profile directory responded with status {response.status_code}",
                code=DIRECTORY_UNAVAILABLE,
            )

        try:
            payload: Any = response.json()
            return UserProfile.model_validate(
                {
                    "id": payload.get("id", user_id),
                    "display_name": payload["display_name"],
                    "avatar_ref": payload.get("avatar_ref"),
                    "role": payload.get("role", "customer"),
                }
            )
        except (json.JSONDecodeError, AttributeError, KeyError, ValidationError) as exc:
            logger.error("[PROFILES] Malformed profile for %s: %s", user_id, response.text[:500])
            raise ServiceUnavailableException(
                "Received malformed profile from directory", code=DIRECTORY_UNAVAILABLE
            ) from exc
