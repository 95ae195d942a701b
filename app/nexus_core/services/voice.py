"""
Purpose: speech-to-text collaborator. Allow voice-based inputs.
Finalized transcripts are handed to an `on_transcript(text)` callback; the
session core never sees audio.
"""

from __future__ import annotations
import hashlib
import io
import logging
from typing import Optional

from ..interfaces import Transcriber, TranscriptCallback

logger = logging.getLogger(__name__)


def transcribe_wav_bytes(wav_bytes: bytes, client, *, model: str = "whisper-1") -> str:
    """Transcribe WAV audio bytes to text using an OpenAI client."""
    with io.BytesIO(wav_bytes) as buf:
        buf.name = "input.wav"
        resp = client.audio.transcriptions.create(model=model, file=buf)
    return (resp.text or "").strip()


class OpenAITranscriber:
    def __init__(self, client, *, model: str = "whisper-1"):
        self.client = client
        self.model = model

    def transcribe(self, audio: bytes) -> str:
        return transcribe_wav_bytes(audio, self.client, model=self.model)


class VoiceInput:
    """
    Turns recorded audio into transcripts for the chat. Empty recordings and
    blank transcripts are dropped; the last recording signature is remembered
    so a UI rerun does not submit the same clip twice.
    """

    def __init__(self, transcriber: Transcriber, on_transcript: TranscriptCallback):
        self.transcriber = transcriber
        self.on_transcript = on_transcript
        self._last_sig: Optional[str] = None

    def submit(self, audio: bytes) -> Optional[str]:
        if not audio:
            return None
        sig = hashlib.sha1(audio).hexdigest()
        if sig == self._last_sig:
            logger.debug("Ignoring repeated recording")
            return None
        self._last_sig = sig

        text = self.transcriber.transcribe(audio).strip()
        if not text:
            return None
        self.on_transcript(text)
        return text
