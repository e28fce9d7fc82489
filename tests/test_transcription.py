from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from harker.main import app
from harker.transcription import (
    MAX_AUDIO_BYTES,
    AudioDataError,
    TranscriptionError,
    TranscriptionService,
    decode_audio_data_url,
    get_transcriber,
)

from conftest import FakeTranscriber

AUDIO = b"\x1aE\xdf\xa3fake-webm-bytes"
DATA_URL = "data:audio/webm;codecs=opus;base64," + base64.b64encode(AUDIO).decode()


def test_decode_audio_data_url():
    assert decode_audio_data_url(DATA_URL) == AUDIO
    assert decode_audio_data_url(base64.b64encode(AUDIO).decode()) == AUDIO


@pytest.mark.parametrize(
    "value", ["data:audio/webm;base64,", "data:audio/webm;base64", "data:audio/webm;base64,%%%", "not base64!"]
)
def test_decode_rejects_bad_payloads(value):
    with pytest.raises(AudioDataError):
        decode_audio_data_url(value)


def test_decode_rejects_oversized_audio():
    oversized = base64.b64encode(b"\0" * (MAX_AUDIO_BYTES + 1)).decode()
    with pytest.raises(AudioDataError, match="25 MB"):
        decode_audio_data_url(oversized)


def _service(handler) -> TranscriptionService:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TranscriptionService(
        api_key="sk-test",
        base_url="https://api.openai.example.test/v1",
        model="whisper-1",
        language="en",
        http_client=http_client,
    )


def test_service_sends_audio_with_fixed_language():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "hello from the group"})

    text = asyncio.run(_service(handler).transcribe(AUDIO))

    assert text == "hello from the group"
    assert len(seen) == 1
    request = seen[0]
    assert request.url.path == "/v1/audio/transcriptions"
    body = request.read()
    assert b'name="language"' in body
    assert b"whisper-1" in body
    assert AUDIO in body


def test_service_wraps_provider_errors_without_retrying():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"error": {"message": "boom"}})

    with pytest.raises(TranscriptionError, match="transcription failed"):
        asyncio.run(_service(handler).transcribe(AUDIO))
    assert len(calls) == 1


def test_transcribe_endpoint(user_client, transcriber):
    response = user_client.post("/api/transcribe", json={"audio": DATA_URL})
    assert response.status_code == 200
    assert response.json() == {"transcription": "we talked about the greeks"}
    assert transcriber.calls == [AUDIO]


def test_transcribe_requires_login(client, transcriber):
    assert client.post("/api/transcribe", json={"audio": DATA_URL}).status_code == 401
    assert transcriber.calls == []


def test_transcribe_rejects_missing_or_bad_audio(user_client, transcriber):
    assert user_client.post("/api/transcribe", json={}).status_code == 400
    response = user_client.post("/api/transcribe", json={"audio": "data:audio/webm;base64,@@@"})
    assert response.status_code == 400
    assert response.json()["message"] == "Audio data is not valid base64"
    assert transcriber.calls == []


def test_transcription_failure_is_a_generic_500(user_client):
    app.dependency_overrides[get_transcriber] = lambda: FakeTranscriber(fail=True)
    response = user_client.post("/api/transcribe", json={"audio": DATA_URL})
    assert response.status_code == 500
    assert response.json() == {"message": "Failed to transcribe audio"}


def test_data_url_without_payload_is_a_bad_request(user_client, transcriber):
    response = user_client.post("/api/transcribe", json={"audio": "data:audio/webm;base64"})
    assert response.status_code == 400
    assert response.json()["message"] == "Audio data URL has no payload"
    assert transcriber.calls == []
