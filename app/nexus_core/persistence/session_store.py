"""
Purpose: Session persistence. Snapshots the chat store and the GPT store into
two independently keyed JSON blobs and rehydrates them at startup.
Why: Reopen sessions where the user left them. The persisted state is not
authoritative; a lost write costs at most one mutation.

What is inside:
- KeyValueStorage implementations: InMemoryStorage, JsonFileStorage
  (StreamlitSessionStorage lives in streamlit_storage.py).
- PersistenceAdapter with save/load for both stores.

Blob layout: {"state": {...}, "version": 0}. Writes never raise; failures are
logged. Unreadable blobs are logged and leave the store as it was.

Testing:
In-memory: simple state tests.
Files: tmp_path fixture.
"""

from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from ..chat_store import ChatStore
from ..gpt_store import GPTStore
from ..interfaces import KeyValueStorage

logger = logging.getLogger(__name__)

CHAT_STORAGE_KEY = "chat-storage"
GPT_STORAGE_KEY = "gpt-storage"
SCHEMA_VERSION = 0


class InMemoryStorage:
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)


class JsonFileStorage:
    """One `<key>.json` file per key; writes go through a temp file and os.replace."""

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class PersistenceAdapter:
    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    # ---------------------------
    # Writes
    # ---------------------------

    def _write(self, key: str, state: dict) -> bool:
        try:
            blob = json.dumps({"state": state, "version": SCHEMA_VERSION}, ensure_ascii=False)
            self.storage.set(key, blob)
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to persist %s", key)
            return False
        return True

    def save_chat_state(self, store: ChatStore) -> bool:
        return self._write(CHAT_STORAGE_KEY, store.snapshot())

    def save_gpt_state(self, store: GPTStore) -> bool:
        return self._write(GPT_STORAGE_KEY, store.snapshot())

    def save(self, chat_store: ChatStore, gpt_store: GPTStore) -> bool:
        chat_ok = self.save_chat_state(chat_store)
        gpt_ok = self.save_gpt_state(gpt_store)
        return chat_ok and gpt_ok

    # ---------------------------
    # Reads
    # ---------------------------

    def _read(self, key: str) -> Optional[dict]:
        try:
            raw = self.storage.get(key)
        except OSError:
            logger.exception("Failed to read %s", key)
            return None
        if not raw:
            return None
        try:
            blob = json.loads(raw)
        except ValueError:
            logger.error("Ignoring corrupt blob under %s", key)
            return None
        state = blob.get("state") if isinstance(blob, dict) else None
        if not isinstance(state, dict):
            logger.error("Ignoring blob without state under %s", key)
            return None
        return state

    def load_gpt_state(self, store: GPTStore) -> bool:
        state = self._read(GPT_STORAGE_KEY)
        if state is None:
            return False
        try:
            store.restore(state)
        except (KeyError, TypeError, ValueError):
            logger.exception("Could not restore %s; starting fresh", GPT_STORAGE_KEY)
            return False
        return True

    def load_chat_state(self, store: ChatStore) -> bool:
        state = self._read(CHAT_STORAGE_KEY)
        if state is None:
            return False
        try:
            store.restore(state)
        except (KeyError, TypeError, ValueError):
            logger.exception("Could not restore %s; starting fresh", CHAT_STORAGE_KEY)
            return False
        return True

    def load_into(self, chat_store: ChatStore, gpt_store: GPTStore) -> tuple[bool, bool]:
        """GPTs first, so restored chats can resolve custom assistants."""
        gpt_loaded = self.load_gpt_state(gpt_store)
        chat_loaded = self.load_chat_state(chat_store)
        return chat_loaded, gpt_loaded

    def clear(self) -> None:
        self.storage.delete(CHAT_STORAGE_KEY)
        self.storage.delete(GPT_STORAGE_KEY)
