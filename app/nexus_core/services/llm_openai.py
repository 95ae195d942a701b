"""
Purpose: Thin client wrapper around OpenAI implementing the `ask` backend.
One place for auth, retries, model options and response/error normalization.

Errors never escape `ask`: invalid configuration and API failures come back
as an AskResult with `error` set, and the content is meant to be shown to the
user as the assistant's reply.

Testing: Mock SDK calls; assert it maps responses and errors correctly.
"""

from __future__ import annotations
import logging
import time
from typing import Optional, Sequence

from openai import OpenAI, OpenAIError, APIError, RateLimitError, APITimeoutError

from ..errors import InvalidConfigurationError
from ..models import AskConfig, AskResult, BackendSettings

logger = logging.getLogger(__name__)

INVALID_CONFIG = "Invalid API configuration. Please check your API key and GPT ID."
MISSING_GPT_ID = "GPT ID is required but not provided."
NO_RESPONSE = "No response generated from the API."


def validate_config(config: Optional[AskConfig]) -> AskConfig:
    if config is None:
        raise InvalidConfigurationError(INVALID_CONFIG)
    if not (config.backend_id or "").strip():
        raise InvalidConfigurationError(MISSING_GPT_ID)
    return config


class OpenAIBackend:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        settings: Optional[BackendSettings] = None,
        client=None,
        retry_delays: Sequence[float] = (0.5, 1.0, 2.0, 4.0),
    ):
        self.settings = settings or BackendSettings()
        self.retry_delays = tuple(retry_delays)
        if client is not None:
            self.client = client
            return
        if not api_key:
            raise InvalidConfigurationError("Missing OPENAI_API_KEY")
        try:
            self.client = OpenAI(api_key=api_key, base_url=base_url)
        except OpenAIError as e:
            raise InvalidConfigurationError(f"Failed to initialize OpenAI client: {e}")

    def _with_retries(self, fn, *args, **kwargs):
        for delay in self.retry_delays:
            try:
                return fn(*args, **kwargs)
            except (RateLimitError, APITimeoutError, APIError) as e:
                logger.warning("OpenAI call failed (%s); retrying in %.1fs", e, delay)
                time.sleep(delay)
        return fn(*args, **kwargs)

    def ask(self, prompt: str, config: AskConfig) -> AskResult:
        try:
            config = validate_config(config)
        except InvalidConfigurationError as e:
            return AskResult(content=str(e), error=str(e))

        def call_cc():
            return self.client.chat.completions.create(
                model=config.model or self.settings.model,
                messages=[
                    {"role": "system", "content": f"Assistant ID: {config.backend_id}"},
                    {"role": "user", "content": prompt},
                ],
                user=config.backend_id,
                temperature=self.settings.temperature,
                top_p=self.settings.top_p,
                max_tokens=self.settings.max_tokens,
            )

        try:
            cc = self._with_retries(call_cc)
            content = cc.choices[0].message.content if cc.choices else None
            if not content:
                raise ValueError(NO_RESPONSE)
            return AskResult(content=content)
        except (OpenAIError, ValueError) as e:
            logger.exception("Backend call failed for %s", config.backend_id)
            return AskResult(
                content=f"Error processing your message: {e}", error=str(e)
            )
