from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import APITimeoutError, OpenAIError

from nexus_core.errors import InvalidConfigurationError
from nexus_core.models import AskConfig, BackendSettings
from nexus_core.services.llm_openai import (
    INVALID_CONFIG,
    MISSING_GPT_ID,
    NO_RESPONSE,
    OpenAIBackend,
)


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def backend(client):
    return OpenAIBackend("", client=client, settings=BackendSettings(), retry_delays=())


def test_successful_answer(backend, client):
    client.chat.completions.create.return_value = completion("Pura vida!")

    result = backend.ask("hola", AskConfig("asst_42", "gpt-4o"))

    assert result.ok
    assert result.content == "Pura vida!"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["user"] == "asst_42"
    assert kwargs["messages"] == [
        {"role": "system", "content": "Assistant ID: asst_42"},
        {"role": "user", "content": "hola"},
    ]
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_tokens"] == 2000


def test_model_falls_back_to_settings(backend, client):
    client.chat.completions.create.return_value = completion("ok")
    backend.ask("hi", AskConfig("asst_42"))
    assert client.chat.completions.create.call_args.kwargs["model"] == "gpt-4"


def test_missing_backend_id(backend, client):
    result = backend.ask("hi", AskConfig("  "))
    assert not result.ok
    assert result.content == MISSING_GPT_ID
    client.chat.completions.create.assert_not_called()


def test_missing_config(backend, client):
    result = backend.ask("hi", None)
    assert result.content == INVALID_CONFIG
    client.chat.completions.create.assert_not_called()


def test_empty_answer_becomes_error(backend, client):
    client.chat.completions.create.return_value = SimpleNamespace(choices=[])
    result = backend.ask("hi", AskConfig("asst_42"))
    assert result.error == NO_RESPONSE
    assert result.content == f"Error processing your message: {NO_RESPONSE}"


def test_sdk_error_becomes_message(backend, client):
    client.chat.completions.create.side_effect = OpenAIError("quota exceeded")
    result = backend.ask("hi", AskConfig("asst_42"))
    assert result.content == "Error processing your message: quota exceeded"
    assert result.error == "quota exceeded"


def test_transient_errors_are_retried(client):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    client.chat.completions.create.side_effect = [
        APITimeoutError(request=request),
        completion("second time lucky"),
    ]
    backend = OpenAIBackend("", client=client, retry_delays=(0.5,))

    with patch("nexus_core.services.llm_openai.time.sleep") as sleep:
        result = backend.ask("hi", AskConfig("asst_42"))

    assert result.content == "second time lucky"
    sleep.assert_called_once_with(0.5)
    assert client.chat.completions.create.call_count == 2


def test_requires_api_key_without_client():
    with pytest.raises(InvalidConfigurationError):
        OpenAIBackend("")
