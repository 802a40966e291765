"""Tests for PresenceRepository upserts and last_seen monotonicity."""

from datetime import datetime, timedelta, timezone

from marketchat.repositories.presence_repository import PresenceRepository

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_first_online_report_creates_row(db):
    repo = PresenceRepository(db)

    row = repo.upsert_status("u1", True, now=T0)
    db.commit()

    assert row.is_online is True
    assert row.last_seen is None


def test_first_offline_report_stamps_last_seen(db):
    repo = PresenceRepository(db)

    row = repo.upsert_status("u1", False, now=T0)
    db.commit()

    assert row.is_online is False
    assert row.last_seen == T0


def test_going_offline_after_online_stamps_last_seen(db):
    repo = PresenceRepository(db)
    repo.upsert_status("u1", True, now=T0)

    row = repo.upsert_status("u1", False, now=T0 + timedelta(minutes=1))
    db.commit()

    assert row.is_online is False
    assert row.last_seen == T0 + timedelta(minutes=1)


def test_repeated_offline_does_not_move_last_seen(db):
    repo = PresenceRepository(db)
    repo.upsert_status("u1", True, now=T0)
    repo.upsert_status("u1", False, now=T0 + timedelta(minutes=1))

    row = repo.upsert_status("u1", False, now=T0 + timedelta(minutes=5))
    db.commit()

    assert row.last_seen == T0 + timedelta(minutes=1)


def test_last_seen_never_moves_backwards(db):
    repo = PresenceRepository(db)
    repo.upsert_status("u1", True, now=T0)
    repo.upsert_status("u1", False, now=T0 + timedelta(minutes=10))
    repo.upsert_status("u1", True, now=T0 + timedelta(minutes=11))

    # Skewed clock on the next report
    row = repo.upsert_status("u1", False, now=T0 + timedelta(minutes=2))
    db.commit()

    assert row.is_online is False
    assert row.last_seen == T0 + timedelta(minutes=10)


def test_going_online_keeps_last_seen(db):
    repo = PresenceRepository(db)
    repo.upsert_status("u1", False, now=T0)

    row = repo.upsert_status("u1", True, now=T0 + timedelta(minutes=3))
    db.commit()

    assert row.is_online is True
    assert row.last_seen == T0


def test_lock_fallback_matches_native_upsert(db, monkeypatch):
    repo = PresenceRepository(db)
    monkeypatch.setattr(
        PresenceRepository, "dialect_name", property(lambda self: "mysql")
    )

    repo.upsert_status("u1", True, now=T0)
    repo.upsert_status("u1", False, now=T0 + timedelta(minutes=4))
    row = repo.upsert_status("u1", False, now=T0 + timedelta(minutes=1))
    db.commit()

    assert row.is_online is False
    assert row.last_seen == T0 + timedelta(minutes=4)


def test_get_for_users(db):
    repo = PresenceRepository(db)
    repo.upsert_status("u1", True, now=T0)
    repo.upsert_status("u2", False, now=T0)
    db.commit()

    rows = repo.get_for_users(["u1", "u2", "u3"])

    assert set(rows) == {"u1", "u2"}
    assert rows["u1"].is_online is True
    assert repo.get_for_users([]) == {}
