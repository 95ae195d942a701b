from datetime import datetime, timedelta

import pytest

from nexus_core.catalog import AssistantCatalog
from nexus_core.chat_store import ChatStore
from nexus_core.gpt_store import GPTStore
from nexus_core.models import GPT, AskResult
from nexus_core.persistence.session_store import InMemoryStorage, PersistenceAdapter

START = datetime(2024, 3, 15, 10, 0, 0)


class FakeClock:
    """Callable clock the tests can move forward by hand."""

    def __init__(self, start=START):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


class FakeBackend:
    def __init__(self, reply="pong", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def ask(self, prompt, config):
        self.calls.append((prompt, config))
        return AskResult(self.reply, self.error)


class FakeSpeech:
    def __init__(self):
        self.calls = []

    def speak(self, text, settings):
        self.calls.append((text, settings))
        return b"mp3:" + text.encode()


def make_gpt(gpt_id, *, at=START, **kwargs):
    kwargs.setdefault("name", gpt_id.title())
    return GPT(id=gpt_id, created_at=at, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return AssistantCatalog()


@pytest.fixture
def gpt_store(clock):
    return GPTStore(clock=clock)


@pytest.fixture
def chat_store(catalog, clock):
    return ChatStore(catalog, clock=clock)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def persistence(storage):
    return PersistenceAdapter(storage)
