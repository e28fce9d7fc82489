from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# Settings are read at import time, so the environment is prepared first.
_DB_DIR = Path(tempfile.mkdtemp(prefix="harker-tests-"))
_DB_FILE = _DB_DIR / "harker.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_FILE}"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["AUTH_STRATEGY"] = "session"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin123"
os.environ["SEED_DATABASE"] = "false"
os.environ.pop("SENTRY_DSN", None)

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from harker.main import app, limiter
from harker.transcription import TranscriptionError, get_transcriber

ADMIN = {"username": "admin", "password": "admin123"}

VIDEO = {
    "title": "British Museum Virtual Tour: Ancient Greece",
    "description": "Ancient Greek artifacts and sculptures.",
    "youtubeUrl": "s5lsyGF7Us0",
    "duration": 45,
    "thumbnailUrl": "",
    "discussionGuide": "# Discussion Questions\n1. What surprised you the most?",
    "active": True,
}

LIVE_EVENT = {
    "title": "Renaissance Art",
    "description": "A virtual tour of the Renaissance collection.",
    "youtubeUrl": "Z1XU5ZGqzeI",
    "eventDate": "2023-12-31T15:00:00Z",
    "discussionGuide": "# Discussion Questions\n1. What artwork resonated with you?",
}


class FakeTranscriber:
    def __init__(self, text: str = "we talked about the greeks", fail: bool = False):
        self.text = text
        self.fail = fail
        self.calls: list[bytes] = []

    async def transcribe(self, audio: bytes) -> str:
        self.calls.append(audio)
        if self.fail:
            raise TranscriptionError("transcription failed")
        return self.text


@pytest.fixture()
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


def _serve(transcriber: FakeTranscriber, raise_server_exceptions: bool = True):
    _DB_FILE.unlink(missing_ok=True)
    limiter.reset()
    app.dependency_overrides[get_transcriber] = lambda: transcriber
    with TestClient(app, raise_server_exceptions=raise_server_exceptions) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    _DB_FILE.unlink(missing_ok=True)


@pytest.fixture()
def client(transcriber: FakeTranscriber):
    yield from _serve(transcriber)


@pytest.fixture()
def crash_client(transcriber: FakeTranscriber):
    """Answers unhandled errors with the app's 500 response instead of re-raising."""
    yield from _serve(transcriber, raise_server_exceptions=False)


@pytest.fixture()
def admin_client(client: TestClient) -> TestClient:
    response = client.post("/api/login", json=ADMIN)
    assert response.status_code == 200
    return client


@pytest.fixture()
def user_client(client: TestClient) -> TestClient:
    response = client.post("/api/register", json={"username": "alice", "password": "secret1"})
    assert response.status_code == 201
    return client
