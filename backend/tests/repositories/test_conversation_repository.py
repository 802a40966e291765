"""
Tests for Conversation Repository.

Tests the per-user-pair conversation architecture:
- Finding conversations by user pairs
- Get-or-create idempotency
- Listing conversations for a user
- Forward-only last-message summary
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from marketchat.models.conversation import Conversation, normalize_pair
from marketchat.repositories.conversation_repository import ConversationRepository


def _at(minutes: int) -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc) + timedelta(minutes=minutes)


class TestNormalizePair:
    def test_orders_ids(self):
        assert normalize_pair("u2", "u1") == ("u1", "u2")
        assert normalize_pair("u1", "u2") == ("u1", "u2")


class TestConversationRepositoryFindByPair:
    """Tests for finding conversations by user pair."""

    def test_find_by_pair_returns_none_if_not_exists(self, db):
        repo = ConversationRepository(db)

        assert repo.find_by_pair("u1", "u2") is None

    def test_find_by_pair_is_symmetric(self, db):
        """Should find conversation regardless of argument order."""
        repo = ConversationRepository(db)
        conversation, _ = repo.get_or_create("u2", "u1")

        found1 = repo.find_by_pair("u1", "u2")
        found2 = repo.find_by_pair("u2", "u1")

        assert found1 is not None and found2 is not None
        assert found1.id == found2.id == conversation.id


class TestConversationRepositoryGetOrCreate:
    """Tests for get-or-create functionality."""

    def test_creates_new_conversation_with_normalized_pair(self, db):
        repo = ConversationRepository(db)

        conversation, created = repo.get_or_create("u2", "u1")

        assert created is True
        assert conversation.participant_a_id == "u1"
        assert conversation.participant_b_id == "u2"
        assert conversation.last_message_at is None
        assert conversation.last_message_preview is None

    def test_returns_existing_conversation(self, db):
        repo = ConversationRepository(db)
        first, _ = repo.get_or_create("u1", "u2")

        second, created = repo.get_or_create("u2", "u1")

        assert created is False
        assert second.id == first.id
        assert db.query(Conversation).count() == 1

    def test_refetches_when_insert_loses_the_race(self, db, session_factory, monkeypatch):
        """A unique-constraint conflict returns the row the other writer created."""
        other = session_factory()
        try:
            winner, _ = ConversationRepository(other).get_or_create("u1", "u2")
        finally:
            other.close()

        repo = ConversationRepository(db)
        real_find = repo.find_by_pair
        calls = []

        def find_missing_first(a, b):
            calls.append((a, b))
            if len(calls) == 1:
                return None
            return real_find(a, b)

        monkeypatch.setattr(repo, "find_by_pair", find_missing_first)

        conversation, created = repo.get_or_create("u1", "u2")

        assert created is False
        assert conversation.id == winner.id
        assert len(calls) == 2

    def test_pair_constraint_rejects_unordered_insert(self, db):
        db.add(Conversation(participant_a_id="u2", participant_b_id="u1"))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()


class TestConversationRepositoryListing:
    def test_find_for_user_orders_by_recent_activity(self, db):
        repo = ConversationRepository(db)
        c12, _ = repo.get_or_create("u1", "u2")
        c13, _ = repo.get_or_create("u1", "u3")
        c23, _ = repo.get_or_create("u2", "u3")

        repo.advance_summary(
            c12.id, message_id="m-old", sender_id="u1", sent_at=_at(0), preview="old"
        )
        repo.advance_summary(
            c13.id, message_id="m-new", sender_id="u3", sent_at=_at(5), preview="new"
        )
        db.commit()

        ids = [c.id for c in repo.find_for_user("u1")]

        assert set(ids) == {c12.id, c13.id}
        assert ids.index(c13.id) < ids.index(c12.id)
        assert c23.id not in ids


class TestConversationRepositoryAdvanceSummary:
    def test_moves_summary_forward(self, db):
        repo = ConversationRepository(db)
        conversation, _ = repo.get_or_create("u1", "u2")

        changed = repo.advance_summary(
            conversation.id, message_id="m1", sender_id="u1", sent_at=_at(1), preview="first"
        )
        db.commit()

        assert changed is True
        refreshed = repo.get_by_id(conversation.id)
        assert refreshed.last_message_at == _at(1)
        assert refreshed.last_message_preview == "first"
        assert refreshed.last_message_id == "m1"
        assert refreshed.last_message_sender_id == "u1"

    def test_never_rewinds_summary(self, db):
        repo = ConversationRepository(db)
        conversation, _ = repo.get_or_create("u1", "u2")
        repo.advance_summary(
            conversation.id, message_id="m2", sender_id="u2", sent_at=_at(2), preview="newer"
        )

        changed = repo.advance_summary(
            conversation.id, message_id="m1", sender_id="u1", sent_at=_at(1), preview="older"
        )
        db.commit()

        assert changed is False
        refreshed = repo.get_by_id(conversation.id)
        assert refreshed.last_message_at == _at(2)
        assert refreshed.last_message_preview == "newer"

    def test_loaded_instance_sees_new_summary(self, db):
        repo = ConversationRepository(db)
        conversation, created = repo.get_or_create("u1", "u2")
        assert created is True

        repo.advance_summary(
            conversation.id, message_id="m1", sender_id="u2", sent_at=_at(3), preview="hello"
        )
        db.commit()

        assert conversation.last_message_at == _at(3)
        assert conversation.last_message_preview == "hello"
        assert conversation.last_message_sender_id == "u2"
