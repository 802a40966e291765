"""Fixtures for API route tests."""

from fastapi.testclient import TestClient
import pytest

from marketchat.database import get_db
from marketchat.main import create_app


@pytest.fixture
def app(session_factory, profiles):
    application = create_app(profile_directory=profiles, broadcast_url="memory://")

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
