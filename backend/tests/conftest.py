# backend/tests/conftest.py
"""
Pytest configuration for the messaging core.

Every test gets its own file-backed SQLite database under tmp_path, so
worker threads in concurrency tests can open their own connections to it.
"""

import os

# Set test mode BEFORE any marketchat imports
os.environ["ENVIRONMENT"] = "test"
os.environ["BROADCAST_URL"] = "memory://"
os.environ.pop("PROFILE_DIRECTORY_URL", None)

from typing import Iterator, List

from broadcaster import Broadcast
import pytest
import pytest_asyncio
from sqlalchemy.orm import Session, sessionmaker

from marketchat.database import Base, build_engine
import marketchat.models  # noqa: F401
from marketchat.schemas.conversation import MessageRecord
from marketchat.schemas.profile import UserProfile
from marketchat.services.conversation_service import ConversationService
from marketchat.services.profile_directory import InMemoryProfileDirectory


class RecordingPublisher:
    """MessagePublisher that keeps every published message in memory."""

    def __init__(self) -> None:
        self.published: List[MessageRecord] = []

    def publish_new_message(self, message: MessageRecord) -> None:
        self.published.append(message)


@pytest.fixture
def engine(tmp_path):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'marketchat_test.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def profiles() -> InMemoryProfileDirectory:
    return InMemoryProfileDirectory(
        [
            UserProfile(id="u1", display_name="Alice Rivera", role="customer"),
            UserProfile(id="u2", display_name="Bruno Okafor", role="artist"),
            UserProfile(id="u3", display_name="Chen Wei", role="artist"),
        ]
    )


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(db, profiles, publisher) -> ConversationService:
    return ConversationService(db, profiles, publisher=publisher)


@pytest.fixture
def make_service(session_factory, profiles, publisher):
    """Build a service on a fresh session (one per thread in concurrency tests)."""
    sessions: List[Session] = []

    def _make() -> ConversationService:
        session = session_factory()
        sessions.append(session)
        return ConversationService(session, profiles, publisher=publisher)

    yield _make
    for session in sessions:
        session.close()


@pytest_asyncio.fixture
async def memory_broadcast():
    broadcast = Broadcast("memory://")
    await broadcast.connect()
    try:
        yield broadcast
    finally:
        await broadcast.disconnect()
