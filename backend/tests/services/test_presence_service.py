"""Tests for PresenceService."""

from marketchat.services.presence_service import PresenceService


def test_unknown_user_is_offline(db):
    status = PresenceService(db).get_status("u1")

    assert status.user_id == "u1"
    assert status.is_online is False
    assert status.last_seen is None


def test_online_then_offline(db):
    service = PresenceService(db)

    online = service.update_user_status("u1", True)
    offline = service.update_user_status("u1", False)

    assert online.is_online is True
    assert online.last_seen is None
    assert offline.is_online is False
    assert offline.last_seen is not None
    assert service.get_status("u1") == offline


def test_last_seen_is_monotonic_across_reports(db):
    service = PresenceService(db)
    service.update_user_status("u1", True)
    first_offline = service.update_user_status("u1", False)

    repeated = service.update_user_status("u1", False)
    service.update_user_status("u1", True)
    second_offline = service.update_user_status("u1", False)

    assert repeated.last_seen == first_offline.last_seen
    assert second_offline.last_seen >= first_offline.last_seen


def test_get_statuses_covers_every_id(db):
    service = PresenceService(db)
    service.update_user_status("u2", True)

    statuses = service.get_statuses(["u1", "u2", "u1"])

    assert list(statuses) == ["u1", "u2"]
    assert statuses["u1"].is_online is False
    assert statuses["u2"].is_online is True
