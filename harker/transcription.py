"""
Speech-to-text for recorded group discussions.

Audio arrives from the browser recorder as a base64 data URL, is decoded here
and handed to the OpenAI audio transcription API in one synchronous call.
There is no chunking, no streaming and no retry: on failure the caller
re-records and resubmits.
"""
import base64
import binascii
import logging
import time
from typing import Optional

import httpx
from openai import AsyncOpenAI

from harker import config

logger = logging.getLogger(__name__)

# Same upload ceiling as the Whisper API
MAX_AUDIO_BYTES = 25 * 1024 * 1024


class TranscriptionError(Exception):
    """The speech-to-text provider failed to return a transcription."""


class AudioDataError(ValueError):
    """The submitted audio payload could not be decoded."""


def decode_audio_data_url(value: str) -> bytes:
    """
    Decode ``data:audio/webm;base64,<payload>`` (or a bare base64 payload).

    Raises:
        AudioDataError: when the payload is empty, not base64, or too large
    """
    payload = value
    if value.startswith("data:"):
        _header, sep, payload = value.partition(",")
        if not sep:
            raise AudioDataError("Audio data URL has no payload")
    payload = payload.strip()
    if not payload:
        raise AudioDataError("Audio data is required")
    try:
        audio = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AudioDataError("Audio data is not valid base64") from exc
    if not audio:
        raise AudioDataError("Audio data is required")
    if len(audio) > MAX_AUDIO_BYTES:
        raise AudioDataError("Audio data exceeds the 25 MB limit")
    return audio


class TranscriptionService:
    """Forwards audio buffers to the OpenAI transcription endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = "whisper-1",
        language: str = "en",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self.language = language
        self.client = AsyncOpenAI(
            api_key=api_key or "missing-api-key",
            base_url=base_url or None,
            http_client=http_client,
            max_retries=0,
        )

    async def transcribe(self, audio: bytes) -> str:
        filename = f"recording-{int(time.time() * 1000)}.webm"
        try:
            logger.info(f"Sending {len(audio)} bytes to {self.model} ({self.language})")
            transcript = await self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio, "audio/webm"),
                language=self.language,
            )
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise TranscriptionError("transcription failed") from e
        return transcript.text


_transcriber: Optional[TranscriptionService] = None


def get_transcriber() -> TranscriptionService:
    global _transcriber
    if _transcriber is None:
        if not config.OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY is not set, transcription requests will fail")
        _transcriber = TranscriptionService(
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            model=config.TRANSCRIPTION_MODEL,
            language=config.TRANSCRIPTION_LANGUAGE,
        )
    return _transcriber
