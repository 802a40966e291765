from __future__ import annotations

from httpx import ConnectError, MockTransport, Response
import pytest

from marketchat.core.exceptions import NotFoundException, ServiceUnavailableException
from marketchat.schemas.profile import UserProfile
from marketchat.services.profile_directory import (
    DIRECTORY_UNAVAILABLE,
    USER_NOT_FOUND,
    HttpProfileDirectory,
    InMemoryProfileDirectory,
)

BASE_URL = "https://users.internal/api"


def _directory(handler) -> HttpProfileDirectory:
    return HttpProfileDirectory(BASE_URL, transport=MockTransport(handler))


def test_resolve_user_parses_profile():
    captured: dict[str, str] = {}

    def handler(request):
        captured["path"] = request.url.path
        return Response(
            200,
            json={"id": "u1", "display_name": "Alice Rivera", "role": "artist", "extra": 1},
        )

    profile = _directory(handler).resolve_user("u1")

    assert captured["path"] == "/api/users/u1"
    assert profile == UserProfile(id="u1", display_name="Alice Rivera", role="artist")


def test_user_id_is_escaped_in_path():
    captured: dict[str, str] = {}

    def handler(request):
        captured["path"] = request.url.raw_path.decode()
        return Response(404)

    with pytest.raises(NotFoundException):
        _directory(handler).resolve_user("../admin?x=1")

    assert captured["path"] == "/api/users/..%2Fadmin%3Fx%3D1"


def test_missing_user_is_not_found():
    directory = _directory(lambda request: Response(404, json={"detail": "nope"}))

    with pytest.raises(NotFoundException) as exc_info:
        directory.resolve_user("u9")

    assert exc_info.value.code == USER_NOT_FOUND


def test_server_error_is_unavailable():
    directory = _directory(lambda request: Response(502, text="bad gateway"))

    with pytest.raises(ServiceUnavailableException) as exc_info:
        directory.resolve_user("u1")

    assert exc_info.value.code == DIRECTORY_UNAVAILABLE


def test_transport_error_is_unavailable():
    def handler(request):
        raise ConnectError("connection refused", request=request)

    with pytest.raises(ServiceUnavailableException):
        _directory(handler).resolve_user("u1")


def test_malformed_body_is_unavailable():
    directory = _directory(lambda request: Response(200, json={"id": "u1"}))

    with pytest.raises(ServiceUnavailableException):
        directory.resolve_user("u1")


def test_resolve_users_skips_unknown_ids():
    def handler(request):
        user_id = request.url.path.rsplit("/", 1)[-1]
        if user_id == "ghost":
            return Response(404)
        return Response(200, json={"id": user_id, "display_name": user_id.upper()})

    profiles = _directory(handler).resolve_users(["u1", "ghost", "u2", "u1"])

    assert sorted(profiles) == ["u1", "u2"]
    assert profiles["u2"].display_name == "U2"


def test_requires_base_url(monkeypatch):
    from marketchat.core.config import settings

    monkeypatch.setattr(settings, "profile_directory_url", None)

    with pytest.raises(ValueError):
        HttpProfileDirectory()


def test_in_memory_directory():
    directory = InMemoryProfileDirectory([UserProfile(id="u1", display_name="Alice")])
    directory.add(UserProfile(id="u2", display_name="Bruno"))

    assert directory.resolve_user("u2").display_name == "Bruno"
    assert set(directory.resolve_users(["u1", "u2", "u3"])) == {"u1", "u2"}
    with pytest.raises(NotFoundException):
        directory.resolve_user("u3")
