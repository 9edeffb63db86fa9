"""Shared test fixtures for backend tests."""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from projectchat.api.deps import get_completion_source
from projectchat.core.config import settings
from projectchat.core.database import get_session
from tests.helpers import FakeProvider, get_test_session, test_engine


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import projectchat.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def client(fake_provider, tmp_path, monkeypatch):
    """FastAPI TestClient with the database and model provider swapped out."""
    monkeypatch.setattr("projectchat.core.database.engine", test_engine)
    monkeypatch.setattr(settings, "data_dir", tmp_path)

    from projectchat.main import app

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_completion_source] = lambda: fake_provider

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
