"""
Purpose: The single orchestration point for a user session. Owns the assistant
catalog, the GPT store and the chat store, and is the only place that talks to
collaborators (backend, speech, persistence).
Prevents UI code from knowing how the stores keep each other in step.

Key responsibilities:
- Forward "assistant selected" to both stores (neither store knows the other).
- Guard outgoing input, append the user's message, call the backend under a
  request token and route the answer to the chat that asked.
- Turn configuration problems and backend errors into assistant messages.
- Snapshot both stores through the persistence port after every mutation.
- Serve derived views (merged assistants, pinned/browsable, chat groups).

Testing: Pure unit tests with fakes: fake AskBackend, in-memory storage,
fixed clock. Verify routing of late answers and error messages.
"""

from __future__ import annotations
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from .catalog import AssistantCatalog
from .chat_store import ChatStore
from .config import AppConfig
from .errors import InvalidConfigurationError
from .gpt_store import GPTStore, visible_to
from .interfaces import AskBackend, InputGuard, KeyValueStorage, SpeechSynthesizer
from .models import (
    GPT,
    AskConfig,
    AskResult,
    Assistant,
    Attachment,
    Chat,
    ChatGroups,
    Message,
    PendingRequest,
    Role,
    Voice,
    VoiceSettings,
    new_id,
)
from .persistence.session_store import JsonFileStorage, PersistenceAdapter
from .persistence.streamlit_storage import StreamlitSessionStorage
from .services.llm_openai import OpenAIBackend
from .services.security import DefaultSecurity
from .services.speech import OpenAISpeech
from .services.voice import OpenAITranscriber, VoiceInput
from . import views

logger = logging.getLogger(__name__)

NO_GPT_MESSAGE = "No GPT configuration found. Please select a valid GPT."
NOT_CONFIGURED_MESSAGE = (
    "This GPT is not properly configured. Please set up the GPT ID in the admin panel."
)
NO_BACKEND_MESSAGE = "The assistant backend is not configured. Please check the API key."


def build_storage(config: AppConfig) -> KeyValueStorage:
    if config.storage == "streamlit":
        return StreamlitSessionStorage()
    return JsonFileStorage(config.storage_dir)


class AssistantSessionController:
    def __init__(
        self,
        backend: Optional[AskBackend] = None,
        *,
        catalog: Optional[AssistantCatalog] = None,
        gpt_store: Optional[GPTStore] = None,
        persistence: Optional[PersistenceAdapter] = None,
        security: Optional[InputGuard] = None,
        speech: Optional[SpeechSynthesizer] = None,
        config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.backend = backend
        self.config = config or AppConfig()
        self.catalog = catalog if catalog is not None else AssistantCatalog()
        self.gpts = gpt_store if gpt_store is not None else GPTStore(clock=clock)
        self.chats = ChatStore(self.catalog, resolve_custom=self._resolve_custom, clock=clock)
        self.persistence = persistence
        self.security: InputGuard = security or DefaultSecurity()
        self.speech = speech
        self.clock = clock
        self.voice_preferences: VoiceSettings = self.config.voice_defaults()
        self.voice: Optional[VoiceInput] = None
        self._pending: dict[str, PendingRequest] = {}

    @classmethod
    def from_config(cls, config: AppConfig) -> "AssistantSessionController":
        """
        Wire the OpenAI services and the storage selected by `config`. Without
        an API key the controller still starts; replies then report the
        missing backend in the chat.
        """
        backend = speech = transcriber = None
        if config.openai_api_key:
            backend = OpenAIBackend(
                config.openai_api_key,
                base_url=config.base_url,
                settings=config.backend_settings(),
            )
            speech = OpenAISpeech(backend.client, model=config.tts_model)
            transcriber = OpenAITranscriber(backend.client, model=config.stt_model)
        else:
            logger.warning("OPENAI_API_KEY is not set; the assistant backend is disabled")

        controller = cls(
            backend,
            persistence=PersistenceAdapter(build_storage(config)),
            speech=speech,
            config=config,
        )
        if transcriber is not None:
            controller.voice = VoiceInput(transcriber, controller.on_transcript)
        controller.startup()
        return controller

    def _resolve_custom(self, assistant_id: str) -> Optional[Assistant]:
        gpt = self.gpts.get(assistant_id)
        return views.gpt_as_assistant(gpt) if gpt else None

    def _persist(self) -> None:
        if self.persistence is not None:
            self.persistence.save(self.chats, self.gpts)

    def is_ready(self) -> bool:
        """True if the controller can answer messages (has a backend)."""
        return self.backend is not None

    def startup(self) -> None:
        """Rehydrate persisted state, seed GPTs once, align the active pointers."""
        if self.persistence is not None:
            self.persistence.load_into(self.chats, self.gpts)
        self.gpts.import_from_catalog(self.catalog.list_all())
        if self.gpts.active_gpt is None:
            self.gpts.set_active(self.chats.active_assistant.id)
        self._persist()

    # ---------------------------
    # Assistant selection
    # ---------------------------

    def select_assistant(self, assistant_id: str, *, create_new_chat: bool = True) -> bool:
        if not self.chats.set_active_assistant(assistant_id, create_new_chat):
            return False
        self.gpts.set_active(assistant_id)
        self._persist()
        return True

    def can_open(self, assistant_id: str) -> bool:
        """Deep links may open built-ins and GPTs visible to this caller, never drafts."""
        if assistant_id in self.catalog:
            return True
        gpt = self.gpts.get(assistant_id)
        return gpt is not None and visible_to(gpt, privileged=self.config.privileged)

    def open_deep_link(self, assistant_id: Optional[str]) -> bool:
        if not assistant_id or not self.can_open(assistant_id):
            logger.info("Deep link to %r refused", assistant_id)
            return False
        return self.select_assistant(assistant_id)

    # ---------------------------
    # Backend requests
    # ---------------------------

    @property
    def pending_requests(self) -> list[PendingRequest]:
        return list(self._pending.values())

    def begin_request(self) -> PendingRequest:
        """Register an in-flight call for the active chat and raise the loading flag."""
        chat = self.chats.active_chat
        if chat is None:
            raise LookupError("A request needs an active chat")
        pending = PendingRequest(
            token=new_id(),
            chat_id=chat.id,
            assistant_id=self.chats.active_assistant.id,
            created_at=self.clock(),
        )
        self._pending[pending.token] = pending
        self.chats.set_loading(True)
        return pending

    def cancel_request(self, token: str) -> bool:
        cancelled = self._pending.pop(token, None) is not None
        self.chats.set_loading(bool(self._pending))
        return cancelled

    def complete_request(self, pending: PendingRequest, result: AskResult) -> Optional[Message]:
        """
        Append the backend answer to the chat that asked, even if the user has
        moved on. Cancelled/duplicate tokens and deleted chats drop the answer.
        """
        if self._pending.pop(pending.token, None) is None:
            logger.info("Discarding stale response for request %s", pending.token)
            return None
        self.chats.set_loading(bool(self._pending))

        if result.error:
            logger.warning("Backend answered with an error: %s", result.error)
        message = self.chats.add_message(
            result.content, Role.ASSISTANT, pending.assistant_id, chat_id=pending.chat_id
        )
        self._persist()
        return message

    def _ask_active_gpt(self, prompt: str) -> AskResult:
        gpt = self.gpts.active_gpt
        if gpt is None:
            return AskResult(NO_GPT_MESSAGE, error="no active GPT")
        if not gpt.backend_id.strip():
            return AskResult(NOT_CONFIGURED_MESSAGE, error="missing backend id")
        if self.backend is None:
            return AskResult(NO_BACKEND_MESSAGE, error="no backend")
        config = AskConfig(
            backend_id=gpt.backend_id,
            model=gpt.model.value if gpt.model else self.config.default_model,
        )
        return self.backend.ask(prompt, config)

    def send_message(
        self, text: str, attachments: Iterable[Attachment] = ()
    ) -> Optional[Message]:
        """
        One chat turn: validate, append the user's message, ask the backend and
        append its answer. Returns the assistant message, or None if it was
        dropped. InputRejectedError propagates before anything is appended.
        """
        attachments = tuple(attachments)
        self.security.validate_outgoing(text, attachments)

        assistant = self.chats.active_assistant
        self.chats.add_message(text, Role.USER, assistant.id, attachments)
        self._persist()

        pending = self.begin_request()
        try:
            result = self._ask_active_gpt(self.security.sanitize_for_prompt(text))
        except Exception:
            self.cancel_request(pending.token)
            raise
        return self.complete_request(pending, result)

    def on_transcript(self, text: str) -> Optional[Message]:
        """Voice input callback: a finalized transcript is sent as a user message."""
        return self.send_message(text)

    # ---------------------------
    # Chats and messages
    # ---------------------------

    def new_chat(self, assistant_id: Optional[str] = None) -> Optional[Chat]:
        """Open a fresh chat and make its assistant active in both stores; None for unknown ids."""
        if not self.select_assistant(assistant_id or self.chats.active_assistant.id):
            return None
        return self.chats.active_chat

    def open_chat(self, chat_id: Optional[str]) -> bool:
        if not self.chats.set_active_chat(chat_id):
            return False
        if chat_id is not None:
            self.gpts.set_active(self.chats.active_assistant.id)
        self._persist()
        return True

    def rename_chat(self, chat_id: str, title: str) -> bool:
        title = (title or "").strip()
        if not title:
            return False
        changed = self.chats.rename_chat(chat_id, title)
        self._persist()
        return changed

    def archive_chat(self, chat_id: str) -> bool:
        changed = self.chats.archive_chat(chat_id)
        self._persist()
        return changed

    def delete_chat(self, chat_id: str) -> bool:
        changed = self.chats.delete_chat(chat_id)
        self._persist()
        return changed

    def edit_message(self, message_id: str, content: str) -> bool:
        changed = self.chats.update_message(message_id, content)
        self._persist()
        return changed

    def give_feedback(
        self, message_id: str, is_positive: bool, comment: Optional[str] = None
    ) -> bool:
        changed = self.chats.add_feedback(message_id, is_positive, comment)
        self._persist()
        return changed

    # ---------------------------
    # Assistants
    # ---------------------------

    def rate_assistant(self, assistant_id: str, rating: int) -> Optional[Assistant]:
        updated = self.chats.update_assistant_stats(assistant_id, rating)
        self._persist()
        return updated

    def set_assistant_voice(self, assistant_id: str, voice: Voice) -> Optional[Assistant]:
        updated = self.chats.set_assistant_voice(assistant_id, voice)
        self._persist()
        return updated

    def toggle_pin(self, assistant_id: str) -> bool:
        pinned = self.chats.toggle_pinned_assistant(assistant_id)
        self._persist()
        return pinned

    def toggle_sidebar(self) -> bool:
        is_open = self.chats.toggle_sidebar()
        self._persist()
        return is_open

    # ---------------------------
    # GPT administration
    # ---------------------------

    def add_gpt(self, gpt: GPT) -> GPT:
        if gpt.id in self.catalog:
            raise InvalidConfigurationError(
                f"GPT id {gpt.id!r} is already used by a built-in assistant"
            )
        added = self.gpts.add(gpt)
        self._persist()
        return added

    def update_gpt(self, gpt: GPT) -> GPT:
        updated = self.gpts.update(gpt)
        self._persist()
        return updated

    def delete_gpt(self, gpt_id: str) -> bool:
        deleted = self.gpts.delete(gpt_id)
        self._persist()
        return deleted

    def set_default_gpt(self, gpt_id: str) -> bool:
        changed = self.gpts.set_default(gpt_id)
        self._persist()
        return changed

    # ---------------------------
    # Views
    # ---------------------------

    def assistants(self) -> list[Assistant]:
        """Built-ins plus visible custom GPTs; GPTs mirroring a built-in id are left out."""
        custom = [g for g in self.gpts.gpts if g.id not in self.catalog]
        return views.merged_assistants(
            self.catalog.list_all(), custom, privileged=self.config.privileged
        )

    def pinned_assistants(self) -> list[Assistant]:
        return views.pinned_assistants(self.assistants(), self.chats.pinned_assistants)

    def browsable_assistants(self, query: str = "") -> list[Assistant]:
        return views.browsable_assistants(
            self.assistants(), self.chats.pinned_assistants, query
        )

    def visible_chats(self, query: str = "", now: Optional[datetime] = None) -> list[Chat]:
        return views.visible_chats(
            self.chats.chats, self.assistants(), now=now or self.clock(), query=query
        )

    def chat_groups(self, query: str = "", now: Optional[datetime] = None) -> ChatGroups:
        now = now or self.clock()
        return views.group_chats_by_recency(self.visible_chats(query, now), now)

    # ---------------------------
    # Voice
    # ---------------------------

    def set_voice_preferences(
        self, *, speed: Optional[float] = None, volume: Optional[float] = None
    ) -> VoiceSettings:
        changes = {}
        if speed is not None:
            changes["speed"] = speed
        if volume is not None:
            changes["volume"] = volume
        self.voice_preferences = replace(self.voice_preferences, **changes)
        return self.voice_preferences

    def voice_settings(self) -> VoiceSettings:
        """Voice of the active assistant (alloy when unset) with the user's speed/volume."""
        voice = self.chats.active_assistant.voice or Voice.ALLOY
        return replace(self.voice_preferences, voice=voice)

    def speak(self, text: str) -> bytes:
        if self.speech is None or not (text or "").strip():
            return b""
        return self.speech.speak(text, self.voice_settings())
