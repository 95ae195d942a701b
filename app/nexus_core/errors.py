"""
Purpose: Error taxonomy for the session core.

Store mutations never raise for unknown ids; they log and no-op. The classes
below are raised at the few seams where a caller has to decide what to do:
catalog rating/voice lookups, backend configuration, input validation and
config loading.
"""

from __future__ import annotations
from typing import Optional


class NexusError(Exception):
    """Base exception for the session core."""


class NotFoundError(NexusError, LookupError):
    def __init__(self, kind: str, ident: Optional[str]):
        super().__init__(f"{kind} not found: {ident!r}")
        self.kind = kind
        self.ident = ident


class AssistantNotFoundError(NotFoundError):
    def __init__(self, ident: Optional[str]):
        super().__init__("assistant", ident)


class RatingOutOfRangeError(NexusError, ValueError):
    def __init__(self, rating):
        super().__init__(f"Rating must be an integer from 1 to 5, got {rating!r}.")
        self.rating = rating


class InvalidConfigurationError(NexusError, ValueError):
    """A GPT cannot be sent to the backend (missing backend id or credential)."""


class ConfigurationError(NexusError, ValueError):
    """Environment configuration could not be parsed."""


class InputRejectedError(NexusError, ValueError):
    """An outgoing message or attachment failed the input guard."""


class InvariantViolation(NexusError, AssertionError):
    """A store invariant does not hold. Reaching this is a bug."""
