"""
Shared pytest fixtures for the Instructor Studio test suite.
The external backend is replaced by an httpx.MockTransport and the local
tables live in a throwaway SQLite file, so no service has to be running.
Factory helpers live in tests/factories.py.
"""
import sys
import os
import tempfile

_tests_dir = os.path.dirname(__file__)
_backend_dir = os.path.join(_tests_dir, "..", "backend")
for _p in (_tests_dir, _backend_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

# Settings are read at import time; configure them before importing the app
_db_dir = tempfile.mkdtemp(prefix="instructor-studio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["INSTRUCTOR_API_URL"] = "http://backend.test"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("OPENROUTER_API_KEY", None)


import httpx
import pytest
from fastapi.testclient import TestClient

from factories import FakeBackend

from instructor_studio.backend_client import BackendClient, get_backend_client
from instructor_studio.db import Base, SessionLocal, engine
from instructor_studio.main import app
from instructor_studio.models import EditorDraft, LessonProgress, Notification
from instructor_studio import roadmap

Base.metadata.create_all(bind=engine)


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_backend_client(backend):
    def _make(token="test-token"):
        return BackendClient(token, transport=httpx.MockTransport(backend.handler))
    return _make


@pytest.fixture
def client(backend, make_backend_client):
    async def _override():
        c = make_backend_client()
        try:
            yield c
        finally:
            await c.aclose()

    app.dependency_overrides[get_backend_client] = _override
    # Not used as a context manager: startup (cleanup loop) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _clean_state():
    yield
    with SessionLocal() as session:
        for model in (EditorDraft, LessonProgress, Notification):
            session.query(model).delete()
        session.commit()
    roadmap._editors.clear()
