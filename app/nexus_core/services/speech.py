"""
Purpose: text-to-speech collaborator. Reads assistant replies aloud in the
active assistant's voice. Playback and volume belong to the UI; this module
only produces MP3 bytes.
"""

from __future__ import annotations
import logging
import os
import tempfile

from ..models import VoiceSettings

logger = logging.getLogger(__name__)

MAX_TTS_CHARS = 4096


def _clip(text: str, max_chars: int) -> str:
    safe = (text or "").strip()
    if len(safe) > max_chars:
        safe = safe[: max_chars - 1].rstrip() + "…"
    return safe


def tts_bytes(
    text: str,
    client,
    settings: VoiceSettings,
    *,
    model: str = "tts-1",
    max_chars: int = MAX_TTS_CHARS,
) -> bytes:
    """
    Return raw MP3 bytes. Tries the streaming path; falls back to non-streaming.
    """
    safe = _clip(text, max_chars)
    if not safe:
        return b""

    request = dict(
        model=model,
        voice=settings.voice.value,
        input=safe,
        speed=settings.speed,
        response_format="mp3",
    )

    streaming = getattr(client.audio.speech, "with_streaming_response", None)
    if streaming is not None:
        with tempfile.NamedTemporaryFile(delete=False, suffix=".mp3") as tmp:
            tmp_path = tmp.name
        try:
            with streaming.create(**request) as resp:
                resp.stream_to_file(tmp_path)
            with open(tmp_path, "rb") as f:
                return f.read()
        finally:
            try:
                os.remove(tmp_path)
            except OSError:
                logger.debug("Could not remove %s", tmp_path)

    resp = client.audio.speech.create(**request)
    if hasattr(resp, "read"):
        return resp.read()
    return getattr(resp, "content", b"") or b""


class OpenAISpeech:
    """SpeechSynthesizer backed by the OpenAI audio API."""

    def __init__(self, client, *, model: str = "tts-1"):
        self.client = client
        self.model = model

    def speak(self, text: str, settings: VoiceSettings) -> bytes:
        return tts_bytes(text, self.client, settings, model=self.model)
