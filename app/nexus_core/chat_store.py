"""
Purpose: Chat session store. Owns chats, their messages, the active-chat and
active-assistant pointers, pinned assistants and the sidebar/loading flags.

Assistant ids are resolved through the catalog first and then through an
injected `resolve_custom` lookup (custom GPTs projected as assistants). The
store never imports the GPT store; keeping the GPT store's active pointer in
step is the controller's job.

Unknown ids never raise here: mutations log and return False/None.

Testing: Pure unit tests with a fixed clock and a fresh catalog.
"""

from __future__ import annotations
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from .catalog import AssistantCatalog
from .errors import NotFoundError
from .models import (
    ActiveChat,
    ActiveChatState,
    Assistant,
    Attachment,
    Chat,
    Feedback,
    Message,
    NO_ACTIVE_CHAT,
    Role,
    Voice,
    new_id,
    truncate_to_millis,
)

logger = logging.getLogger(__name__)

AssistantLookup = Callable[[str], Optional[Assistant]]


class ChatStore:
    def __init__(
        self,
        catalog: AssistantCatalog,
        *,
        resolve_custom: Optional[AssistantLookup] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.catalog = catalog
        self._resolve_custom = resolve_custom
        self._clock = clock

        self._chats: list[Chat] = []
        self._active: ActiveChatState = NO_ACTIVE_CHAT
        initial = catalog.default_assistant()
        self._active_assistant_id: str = initial.id
        self._active_assistant_snapshot: Assistant = initial
        self._pinned: list[str] = []

        self.is_sidebar_open: bool = True
        self.is_loading: bool = False

    # ---------------------------
    # Lookups
    # ---------------------------

    def resolve_assistant(self, assistant_id: str) -> Optional[Assistant]:
        """Built-in catalog first, then custom GPTs."""
        assistant = self.catalog.get(assistant_id)
        if assistant is None and self._resolve_custom is not None:
            assistant = self._resolve_custom(assistant_id)
        return assistant

    @property
    def chats(self) -> list[Chat]:
        return list(self._chats)

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        return next((c for c in self._chats if c.id == chat_id), None)

    @property
    def active_chat_state(self) -> ActiveChatState:
        return self._active

    @property
    def active_chat(self) -> Optional[Chat]:
        if isinstance(self._active, ActiveChat):
            return self.get_chat(self._active.chat_id)
        return None

    @property
    def messages(self) -> list[Message]:
        """The visible message buffer: the active chat's messages, or nothing."""
        chat = self.active_chat
        return list(chat.messages) if chat else []

    @property
    def active_assistant(self) -> Assistant:
        resolved = self.resolve_assistant(self._active_assistant_id)
        return resolved if resolved is not None else self._active_assistant_snapshot

    @property
    def pinned_assistants(self) -> list[str]:
        return list(self._pinned)

    def find_message(self, message_id: str) -> Optional[tuple[Chat, Message]]:
        for chat in self._chats:
            message = chat.find_message(message_id)
            if message is not None:
                return chat, message
        return None

    # ---------------------------
    # Internal helpers
    # ---------------------------

    def _new_chat(self, assistant_id: str) -> Chat:
        assistant = self.resolve_assistant(assistant_id)
        now = truncate_to_millis(self._clock())
        return Chat(
            id=new_id(),
            title=assistant.name if assistant else "New Chat",
            assistant_id=assistant_id,
            last_updated=now,
            created_at=now,
        )

    def _replace_chat(self, chat: Chat) -> None:
        self._chats = [chat if c.id == chat.id else c for c in self._chats]

    def _set_active_assistant(self, assistant: Assistant) -> None:
        self._active_assistant_id = assistant.id
        self._active_assistant_snapshot = assistant

    def _is_active(self, chat_id: str) -> bool:
        return isinstance(self._active, ActiveChat) and self._active.chat_id == chat_id

    def _edit_message(self, message_id: str, **changes) -> bool:
        found = self.find_message(message_id)
        if found is None:
            logger.debug("Message %s not found", message_id)
            return False
        chat, message = found
        edited = replace(message, **changes)
        self._replace_chat(
            replace(
                chat,
                messages=tuple(edited if m.id == message_id else m for m in chat.messages),
            )
        )
        return True

    # ---------------------------
    # Assistant selection
    # ---------------------------

    def set_active_assistant(self, assistant_id: str, create_new_chat: bool = True) -> bool:
        """
        Make an assistant active. With create_new_chat a fresh empty chat is
        prepended and activated. Returns False (state unchanged) when the id
        resolves to nothing.
        """
        assistant = self.resolve_assistant(assistant_id)
        if assistant is None:
            logger.warning("Cannot activate unknown assistant %s", assistant_id)
            return False

        self._set_active_assistant(assistant)
        if create_new_chat:
            chat = self._new_chat(assistant_id)
            self._chats = [chat, *self._chats]
            self._active = ActiveChat(chat.id)
        return True

    def create_new_chat(self, assistant_id: str) -> Chat:
        chat = self._new_chat(assistant_id)
        self._chats = [chat, *self._chats]
        self._active = ActiveChat(chat.id)
        return chat

    # ---------------------------
    # Messages
    # ---------------------------

    def add_message(
        self,
        content: str,
        role: Union[Role, str],
        assistant_id: str,
        attachments: Optional[Iterable[Attachment]] = None,
        *,
        chat_id: Optional[str] = None,
    ) -> Optional[Message]:
        """
        Append a message. By default it goes to the active chat, and a new chat
        for `assistant_id` is created and activated when there is none.
        Passing chat_id targets that chat without touching the active pointer;
        None is returned if it no longer exists.
        """
        now = truncate_to_millis(self._clock())
        message = Message(
            id=new_id(),
            content=content,
            role=Role(role),
            timestamp=now,
            assistant_id=assistant_id,
            attachments=tuple(attachments or ()),
        )

        if chat_id is not None:
            target = self.get_chat(chat_id)
            if target is None:
                logger.info("Chat %s is gone; dropping message", chat_id)
                return None
        else:
            target = self.active_chat

        if target is None:
            chat = replace(
                self._new_chat(assistant_id),
                messages=(message,),
                has_interaction=True,
            )
            self._chats = [chat, *self._chats]
            self._active = ActiveChat(chat.id)
            return message

        self._replace_chat(
            replace(
                target,
                messages=(*target.messages, message),
                last_updated=now,
                has_interaction=True,
            )
        )
        return message

    def update_message(self, message_id: str, new_content: str) -> bool:
        return self._edit_message(message_id, content=new_content)

    def add_feedback(
        self, message_id: str, is_positive: bool, comment: Optional[str] = None
    ) -> bool:
        """Set or overwrite feedback. Only assistant-authored messages accept it."""
        found = self.find_message(message_id)
        if found is None:
            logger.debug("Message %s not found; feedback ignored", message_id)
            return False
        if found[1].role is not Role.ASSISTANT:
            logger.warning("Feedback is only accepted on assistant messages (%s)", message_id)
            return False
        return self._edit_message(
            message_id, feedback=Feedback(bool(is_positive), comment)
        )

    # ---------------------------
    # Chat lifecycle
    # ---------------------------

    def set_active_chat(self, chat_id: Optional[str]) -> bool:
        if chat_id is None:
            self._active = NO_ACTIVE_CHAT
            return True

        chat = self.get_chat(chat_id)
        if chat is None:
            logger.debug("Chat %s not found", chat_id)
            return False

        self._active = ActiveChat(chat.id)
        assistant = self.resolve_assistant(chat.assistant_id)
        if assistant is not None:
            self._set_active_assistant(assistant)
        else:
            logger.info(
                "Assistant %s of chat %s is unavailable; keeping %s",
                chat.assistant_id,
                chat.id,
                self._active_assistant_id,
            )
        return True

    def rename_chat(self, chat_id: str, new_title: str) -> bool:
        chat = self.get_chat(chat_id)
        if chat is None:
            return False
        self._replace_chat(replace(chat, title=new_title))
        return True

    def archive_chat(self, chat_id: str) -> bool:
        chat = self.get_chat(chat_id)
        if chat is None:
            return False
        self._replace_chat(replace(chat, archived=True))
        if self._is_active(chat_id):
            self._active = NO_ACTIVE_CHAT
        return True

    def delete_chat(self, chat_id: str) -> bool:
        if self.get_chat(chat_id) is None:
            return False
        self._chats = [c for c in self._chats if c.id != chat_id]
        if self._is_active(chat_id):
            self._active = NO_ACTIVE_CHAT
        return True

    # ---------------------------
    # Assistants, flags
    # ---------------------------

    def toggle_pinned_assistant(self, assistant_id: str) -> bool:
        """Flip membership; returns True if the assistant is now pinned."""
        if assistant_id in self._pinned:
            self._pinned = [i for i in self._pinned if i != assistant_id]
            return False
        self._pinned = [*self._pinned, assistant_id]
        return True

    def update_assistant_stats(self, assistant_id: str, rating: int) -> Optional[Assistant]:
        """Record a rating on a built-in assistant; custom GPTs carry no stats."""
        try:
            return self.catalog.record_rating(assistant_id, rating)
        except NotFoundError:
            logger.warning("No built-in assistant %s to rate", assistant_id)
            return None

    def set_assistant_voice(self, assistant_id: str, voice: Voice) -> Optional[Assistant]:
        try:
            assistant = self.catalog.set_voice(assistant_id, voice)
        except NotFoundError:
            logger.warning("No built-in assistant %s to assign a voice to", assistant_id)
            return None
        if assistant.id == self._active_assistant_id:
            self._set_active_assistant(assistant)
        return assistant

    def toggle_sidebar(self) -> bool:
        self.is_sidebar_open = not self.is_sidebar_open
        return self.is_sidebar_open

    def set_loading(self, is_loading: bool) -> None:
        self.is_loading = bool(is_loading)

    # ---------------------------
    # Serialization
    # ---------------------------

    def snapshot(self) -> dict:
        chat = self.active_chat
        return {
            "messages": [m.to_dict() for m in self.messages],
            "chats": [c.to_dict() for c in self._chats],
            "activeChat": chat.to_dict() if chat else None,
            "activeAssistant": self.active_assistant.to_dict(),
            "isSidebarOpen": self.is_sidebar_open,
            "pinnedAssistants": list(self._pinned),
        }

    def restore(self, data: dict) -> None:
        """
        Replace the current state with a persisted snapshot. The `messages` key
        is ignored; the buffer is rebuilt from the active chat.
        """
        chats: dict[str, Chat] = {}
        for raw in data.get("chats") or ():
            chat = Chat.from_dict(raw)
            chats.setdefault(chat.id, chat)
        self._chats = list(chats.values())

        self._active = NO_ACTIVE_CHAT
        active = data.get("activeChat")
        if active and self.get_chat(active.get("id")) is not None:
            self._active = ActiveChat(active["id"])

        assistant = data.get("activeAssistant")
        if assistant and assistant.get("id"):
            resolved = self.resolve_assistant(assistant["id"])
            self._set_active_assistant(resolved or Assistant.from_dict(assistant))

        self._pinned = list(dict.fromkeys(data.get("pinnedAssistants") or ()))
        self.is_sidebar_open = bool(data.get("isSidebarOpen", True))
