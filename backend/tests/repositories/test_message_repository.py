"""
Tests for Message Repository.

Covers keyset ordering, catch-up queries, read marking and the derived
unread counts.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.repositories.message_repository import MessageRepository

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def conversation(db):
    conversation, _ = ConversationRepository(db).get_or_create("u1", "u2")
    return conversation


def _add(repo, conversation, sender, receiver, content, seconds, client_token=None):
    return repo.create_message(
        conversation_id=conversation.id,
        sender_id=sender,
        receiver_id=receiver,
        content=content,
        created_at=BASE_TIME + timedelta(seconds=seconds),
        client_token=client_token,
    )


class TestFindByConversation:
    def test_returns_messages_in_send_order(self, db, conversation):
        repo = MessageRepository(db)
        third = _add(repo, conversation, "u1", "u2", "third", 3)
        first = _add(repo, conversation, "u1", "u2", "first", 1)
        second = _add(repo, conversation, "u2", "u1", "second", 2)
        db.commit()

        messages = repo.find_by_conversation(conversation.id)

        assert [m.id for m in messages] == [first.id, second.id, third.id]

    def test_equal_timestamps_fall_back_to_id(self, db, conversation):
        repo = MessageRepository(db)
        a = _add(repo, conversation, "u1", "u2", "a", 1)
        b = _add(repo, conversation, "u2", "u1", "b", 1)
        db.commit()

        messages = repo.find_by_conversation(conversation.id)

        assert [m.id for m in messages] == sorted([a.id, b.id])

    def test_after_anchor_and_limit(self, db, conversation):
        repo = MessageRepository(db)
        created = [_add(repo, conversation, "u1", "u2", f"m{i}", i) for i in range(5)]
        db.commit()

        page = repo.find_by_conversation(conversation.id, limit=2, after=created[1])

        assert [m.content for m in page] == ["m2", "m3"]


class TestClientToken:
    def test_find_by_client_token(self, db, conversation):
        repo = MessageRepository(db)
        message = _add(repo, conversation, "u1", "u2", "hello", 1, client_token="tok-1")
        db.commit()

        assert repo.find_by_client_token(conversation.id, "u1", "tok-1").id == message.id
        assert repo.find_by_client_token(conversation.id, "u2", "tok-1") is None

    def test_duplicate_token_violates_constraint(self, db, conversation):
        repo = MessageRepository(db)
        _add(repo, conversation, "u1", "u2", "hello", 1, client_token="tok-1")

        with pytest.raises(IntegrityError):
            _add(repo, conversation, "u1", "u2", "hello again", 2, client_token="tok-1")
        db.rollback()


class TestCatchUp:
    def test_messages_after_id_for_receiver(self, db, conversation):
        repo = MessageRepository(db)
        m1 = _add(repo, conversation, "u1", "u2", "one", 1)
        _add(repo, conversation, "u2", "u1", "reply", 2)
        m3 = _add(repo, conversation, "u1", "u2", "three", 3)
        db.commit()

        missed = repo.get_messages_after_id_for_receiver("u2", m1.id)

        assert [m.id for m in missed] == [m3.id]

    def test_unknown_anchor_returns_nothing(self, db, conversation):
        repo = MessageRepository(db)
        _add(repo, conversation, "u1", "u2", "one", 1)
        db.commit()

        assert repo.get_messages_after_id_for_receiver("u2", "01J0000000000000000000000Z") == []


class TestReadStateAndUnread:
    def test_mark_conversation_read_is_idempotent(self, db, conversation):
        repo = MessageRepository(db)
        _add(repo, conversation, "u1", "u2", "one", 1)
        _add(repo, conversation, "u1", "u2", "two", 2)
        own = _add(repo, conversation, "u2", "u1", "mine", 3)
        db.commit()

        assert repo.mark_conversation_read(conversation.id, "u2") == 2
        db.commit()
        assert repo.mark_conversation_read(conversation.id, "u2") == 0
        db.commit()

        assert own.read_at is None
        assert repo.count_unread(conversation.id, "u2") == 0
        assert repo.count_unread(conversation.id, "u1") == 1

    def test_unread_counts(self, db, conversation):
        other, _ = ConversationRepository(db).get_or_create("u2", "u3")
        repo = MessageRepository(db)
        _add(repo, conversation, "u1", "u2", "one", 1)
        _add(repo, conversation, "u1", "u2", "two", 2)
        _add(repo, other, "u3", "u2", "hey", 3)
        db.commit()

        assert repo.count_unread(conversation.id, "u2") == 2
        assert repo.count_unread_by_conversation([conversation.id, other.id], "u2") == {
            conversation.id: 2,
            other.id: 1,
        }
        assert repo.count_unread_by_conversation([], "u2") == {}
        assert repo.get_unread_count_for_user("u2") == 3
        assert repo.get_unread_count_for_user("u1") == 0
