"""
Abstractions for pluggable collaborators. Inversion of control: the session
core depends on interfaces, not concrete services. Enables fakes/mocks and
future swaps.
Protocols define what collaborators can do, without saying how they do it.

Common protocols:
- AskBackend.ask(prompt, config) -> AskResult
- SpeechSynthesizer.speak(text, settings) -> bytes
- Transcriber.transcribe(audio) -> str
- KeyValueStorage.get/set/delete for persisted blobs
- InputGuard.validate_outgoing / sanitize_for_prompt

Testing: Use simple fake implementations to test the controller without
network calls or disk.
"""

from __future__ import annotations
from typing import Callable, Iterable, Optional, Protocol

from .models import AskConfig, AskResult, Attachment, VoiceSettings


class AskBackend(Protocol):
    def ask(self, prompt: str, config: AskConfig) -> AskResult: ...


class SpeechSynthesizer(Protocol):
    def speak(self, text: str, settings: VoiceSettings) -> bytes: ...


class Transcriber(Protocol):
    def transcribe(self, audio: bytes) -> str: ...


TranscriptCallback = Callable[[str], None]


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InputGuard(Protocol):
    def validate_outgoing(
        self, text: str, attachments: Iterable[Attachment] = ()
    ) -> None: ...

    def sanitize_for_prompt(self, text: str) -> str: ...
