"""
Purpose: Store for user-authored assistant configurations (GPTs).
Owns creation, update, deletion, the single-default invariant and the
active-GPT pointer. The list is kept in recency order, newest first.

Invariant: at most one GPT has is_default=True after every public method.
Every method that sets a default clears the others in the same call, before
the new list is published.

Testing: Pure unit tests with a fixed clock; property tests over random
add/update/delete sequences call check_invariants() after each step.
"""

from __future__ import annotations
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from .errors import InvariantViolation
from .models import GPT, GPTModel, ApiConfig, Assistant, Capabilities, Visibility

logger = logging.getLogger(__name__)


def visible_to(gpt: GPT, *, privileged: bool = False) -> bool:
    """Public GPTs are visible to everyone, private ones to elevated callers, drafts never."""
    if gpt.visibility is Visibility.PUBLIC:
        return True
    return privileged and gpt.visibility is Visibility.PRIVATE


def gpt_from_assistant(assistant: Assistant, *, now: datetime) -> GPT:
    return GPT(
        id=assistant.id,
        name=assistant.name,
        description=assistant.description,
        role=assistant.role,
        avatar=assistant.avatar,
        instructions=f"You are {assistant.name}, {assistant.description}",
        backend_id="",
        capabilities=Capabilities.all_enabled(),
        files=(),
        created_at=now,
        model=GPTModel.GPT_4,
        visibility=Visibility.PUBLIC,
        is_default=assistant.is_default,
        api_config=ApiConfig(use_custom_api=False),
    )


class GPTStore:
    def __init__(
        self,
        gpts: Optional[Iterable[GPT]] = None,
        active_gpt_id: Optional[str] = None,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._gpts: list[GPT] = list(gpts or ())
        self._active_id: Optional[str] = active_gpt_id
        self._clock = clock

    # ---------------------------
    # Reads
    # ---------------------------

    @property
    def gpts(self) -> list[GPT]:
        return list(self._gpts)

    def __len__(self) -> int:
        return len(self._gpts)

    def get(self, gpt_id: str) -> Optional[GPT]:
        return next((g for g in self._gpts if g.id == gpt_id), None)

    @property
    def active_gpt(self) -> Optional[GPT]:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def get_default(self) -> Optional[GPT]:
        """The GPT flagged default, else the first in list order, else None."""
        flagged = next((g for g in self._gpts if g.is_default), None)
        if flagged is not None:
            return flagged
        return self._gpts[0] if self._gpts else None

    def visible(self, *, privileged: bool = False) -> list[GPT]:
        return [g for g in self._gpts if visible_to(g, privileged=privileged)]

    def check_invariants(self) -> None:
        defaults = [g.id for g in self._gpts if g.is_default]
        if len(defaults) > 1:
            raise InvariantViolation(f"Multiple default GPTs: {defaults}")
        ids = [g.id for g in self._gpts]
        if len(ids) != len(set(ids)):
            raise InvariantViolation(f"Duplicate GPT ids: {ids}")

    # ---------------------------
    # Mutations
    # ---------------------------

    @staticmethod
    def _clear_defaults(gpts: list[GPT], keep_id: str) -> list[GPT]:
        return [
            replace(g, is_default=False) if g.is_default and g.id != keep_id else g
            for g in gpts
        ]

    def add(self, gpt: GPT) -> GPT:
        """
        Prepend a new GPT. The first GPT in an empty store becomes default.
        An existing entry with the same id is replaced.
        """
        rest = [g for g in self._gpts if g.id != gpt.id]
        if len(rest) != len(self._gpts):
            logger.warning("GPT %s already exists; replacing it", gpt.id)

        if gpt.is_default or not rest:
            gpt = replace(gpt, is_default=True)
            rest = self._clear_defaults(rest, gpt.id)

        self._gpts = [gpt, *rest]
        logger.info("Added GPT %s (default=%s)", gpt.id, gpt.is_default)
        return gpt

    def update(self, gpt: GPT) -> GPT:
        """
        Replace an existing GPT (stamping updated_at) or insert it as new
        (stamping created_at and updated_at). Re-sorts by recency afterwards.
        """
        now = self._clock()
        existing = self.get(gpt.id)
        gpts = self._clear_defaults(self._gpts, gpt.id) if gpt.is_default else list(self._gpts)

        if existing is not None:
            gpt = replace(gpt, updated_at=now)
            gpts = [gpt if g.id == gpt.id else g for g in gpts]
        else:
            gpt = replace(gpt, created_at=now, updated_at=now)
            gpts = [gpt, *gpts]

        gpts.sort(key=lambda g: g.recency, reverse=True)
        self._gpts = gpts
        logger.info("Updated GPT %s", gpt.id)
        return gpt

    def delete(self, gpt_id: str) -> bool:
        """
        Remove a GPT. If it was the default, the most recently updated survivor
        inherits the flag. Unknown ids are logged and ignored.
        """
        target = self.get(gpt_id)
        if target is None:
            logger.warning("Attempted to delete non-existent GPT with id: %s", gpt_id)
            return False

        remaining = [g for g in self._gpts if g.id != gpt_id]
        if target.is_default and remaining:
            newest = remaining[0]
            for candidate in remaining[1:]:
                if not newest.recency > candidate.recency:
                    newest = candidate
            remaining = [
                replace(g, is_default=True) if g.id == newest.id else g
                for g in remaining
            ]
            logger.info("GPT %s is the new default", newest.id)

        self._gpts = remaining
        if self._active_id == gpt_id:
            self._active_id = None
        logger.info("Deleted GPT %s", gpt_id)
        return True

    def set_default(self, gpt_id: str) -> bool:
        if self.get(gpt_id) is None:
            logger.warning("Cannot make unknown GPT %s the default", gpt_id)
            return False
        self._gpts = [replace(g, is_default=(g.id == gpt_id)) for g in self._gpts]
        return True

    def set_active(self, gpt_id: Optional[str]) -> Optional[GPT]:
        """Point at the matching GPT, or at nothing. Never touches is_default."""
        gpt = self.get(gpt_id) if gpt_id is not None else None
        self._active_id = gpt.id if gpt is not None else None
        return gpt

    def import_from_catalog(self, assistants: Iterable[Assistant]) -> int:
        """
        Seed the store from the built-in catalog. Runs only while the store is
        empty; returns the number of GPTs created.
        """
        if self._gpts:
            return 0
        now = self._clock()
        imported = [gpt_from_assistant(a, now=now) for a in assistants]
        seen_default = False
        for i, gpt in enumerate(imported):
            if gpt.is_default:
                if seen_default:
                    imported[i] = replace(gpt, is_default=False)
                seen_default = True
        self._gpts = imported
        logger.info("Imported %d GPTs from the assistant catalog", len(imported))
        return len(imported)

    # ---------------------------
    # Serialization
    # ---------------------------

    def snapshot(self) -> dict:
        active = self.active_gpt
        return {
            "gpts": [g.to_dict() for g in self._gpts],
            "activeGPT": active.to_dict() if active else None,
        }

    def restore(self, data: dict) -> None:
        """Replace the current state with a persisted snapshot."""
        gpts: list[GPT] = []
        for raw in data.get("gpts") or ():
            gpt = GPT.from_dict(raw)
            if any(g.id == gpt.id for g in gpts):
                logger.warning("Dropping duplicate persisted GPT %s", gpt.id)
                continue
            gpts.append(gpt)

        defaults = [g.id for g in gpts if g.is_default]
        if len(defaults) > 1:
            logger.warning("Persisted GPT state had several defaults; keeping %s", defaults[0])
            gpts = self._clear_defaults(gpts, defaults[0])

        self._gpts = gpts
        self._active_id = None
        active = data.get("activeGPT")
        if active and active.get("id"):
            self.set_active(active["id"])
