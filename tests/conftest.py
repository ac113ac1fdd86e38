"""
Shared test fixtures for all test modules.

Provides:
- Test environment setup (TESTING=true, JWT secret, in-memory database)
- db_session: SQLite in-memory session shared with the API under test
- client: TestClient with get_db overridden
- auth helpers: tokens minted the way the identity provider mints them
- AI mocks: mock LLM provider and a deterministic embedding service
"""

import hashlib
import os
import re
import uuid
from typing import Dict, List

# =============================================================================
# Test Environment Configuration
# =============================================================================

os.environ["TESTING"] = "true"
os.environ.setdefault("STUDYHUB_JWT_SECRET", "test-secret-key-for-testing-only")
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from studyhub import auth, cache, database, embedding_service, file_service, tasks
from studyhub.config import settings
from studyhub.db_models import Base, DBProfile
from studyhub.main import app

USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"

LECTURE_TEXT = (
    "Photosynthesis converts light energy into chemical energy. "
    "Chlorophyll absorbs mostly blue and red light. "
    "The Calvin cycle fixes carbon dioxide into sugars. "
    "Cellular respiration releases the energy stored in glucose."
)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine; StaticPool keeps one connection so every session sees the same data."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(test_engine, "connect")
    def enable_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    # Celery tasks and the health check open sessions through get_db_context
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """TestClient whose requests use the in-memory database."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[database.get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Auth Fixtures
# =============================================================================

def bearer(user_id: str = USER_ID, **kwargs) -> Dict[str, str]:
    return {"Authorization": f"Bearer {auth.create_access_token(user_id, **kwargs)}"}


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return bearer(USER_ID, email="student@example.com")


@pytest.fixture
def other_headers() -> Dict[str, str]:
    return bearer(OTHER_USER_ID)


@pytest.fixture
def admin_headers(db_session) -> Dict[str, str]:
    admin_id = str(uuid.uuid4())
    db_session.add(DBProfile(id=admin_id, email="admin@example.com", role="admin"))
    db_session.commit()
    return bearer(admin_id)


# =============================================================================
# AI Mocks
# =============================================================================

class FakeEmbeddingService:
    """Bag-of-words hashing vectors: identical texts score 1.0, unrelated texts near 0."""

    dimensions = 64

    def __init__(self):
        self.calls: List[List[str]] = []

    def vector(self, text: str) -> List[float]:
        values = [0.0] * self.dimensions
        for word in re.findall(r"\w+", text.lower()):
            values[int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimensions] += 1.0
        return values

    async def embed_text(self, text: str) -> List[float]:
        self.calls.append([text])
        return self.vector(text)

    async def embed_batch(self, texts: List[str], batch_size: int = None) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]


@pytest.fixture(autouse=True)
def mock_ai_for_all_tests(monkeypatch, tmp_path):
    """
    Route every AI call to the mock provider and the fake embedding service.

    Also points blob storage at a temporary directory and turns off the
    Redis response cache. Applied to all tests via autouse=True.
    """
    monkeypatch.setattr(settings, "preferred_ai_provider", "mock")
    monkeypatch.setattr(settings, "openai_api_key", None)
    monkeypatch.setattr(settings, "anthropic_api_key", None)
    monkeypatch.setattr(settings, "ai_cache_enabled", False)
    monkeypatch.setattr(cache, "_redis_client", False)
    monkeypatch.setattr(settings, "storage_path", str(tmp_path / "storage"))

    fake = FakeEmbeddingService()
    monkeypatch.setattr(embedding_service, "_embedding_service", fake)
    return fake


@pytest.fixture
def fake_embeddings(mock_ai_for_all_tests) -> FakeEmbeddingService:
    return mock_ai_for_all_tests


@pytest.fixture
def dispatched(monkeypatch):
    """Replace the Celery task used by file_service; records .delay() calls."""
    from unittest.mock import MagicMock

    task = MagicMock()
    monkeypatch.setattr(file_service, "generate_file_embeddings", task)
    return task


@pytest.fixture
def run_worker(monkeypatch):
    """Run the Celery task body inline, without a result backend."""
    monkeypatch.setattr(tasks.generate_file_embeddings, "update_state", lambda **kwargs: None)

    def run(task_id):
        return tasks.generate_file_embeddings(task_id)

    return run


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture
def workspace(client, auth_headers) -> Dict:
    response = client.post("/workspaces", json={"name": "Biology 101"}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def uploaded_file(client, auth_headers, workspace) -> Dict:
    response = client.post(
        "/files",
        data={"workspaceId": workspace["id"]},
        files={"file": ("lecture.txt", LECTURE_TEXT.encode(), "text/plain")},
        headers=auth_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()
