"""
Purpose: Built-in assistant catalog.
Seeded once at construction, looked up by id, never shrinks. The only
mutations are rating submissions and voice assignment; both swap in a new
frozen Assistant and bump `version`, so earlier reads stay valid snapshots.
"""

from __future__ import annotations
import logging
from dataclasses import replace
from typing import Iterable, Optional

from .errors import AssistantNotFoundError
from .models import (
    Assistant,
    AssistantStats,
    Category,
    RatingDistribution,
    Voice,
)
from .ratings import fold_rating

logger = logging.getLogger(__name__)


def _stats(users: int, rating: float, five: int, four: int, three: int, two: int, one: int):
    return AssistantStats(
        users=users,
        rating=rating,
        ratings=RatingDistribution(five=five, four=four, three=three, two=two, one=one),
    )


def _avatar(photo: str) -> str:
    return f"https://images.unsplash.com/{photo}?w=64&h=64&fit=crop&crop=faces&q=80"


BUILTIN_ASSISTANTS: tuple[Assistant, ...] = (
    Assistant(
        id="nexus-ai-001",
        name="Nexus AI",
        description="El primer Chat autónomo de Costa Rica",
        avatar=_avatar("photo-1620712943543-bcc4688e7485"),
        role="AI Assistant",
        is_primary=True,
        is_default=True,
        voice=Voice.ALLOY,
        category=Category.FEATURED,
        creator="Nexa Digital",
        chat_count=25000,
        stats=_stats(25000, 4.9, 15000, 7000, 2000, 800, 200),
    ),
    Assistant(
        id="axel-eleven-001",
        name="Axel Eleven Labs Expert",
        description="Asistente experto en Eleven Labs para la creación de audios",
        avatar=_avatar("photo-1614741118887-7a4ee193a5fa"),
        role="Audio Expert",
        voice=Voice.ECHO,
        category=Category.TRENDING,
        creator="Eleven Labs",
        chat_count=15000,
        stats=_stats(15000, 4.8, 9000, 4000, 1500, 400, 100),
    ),
    Assistant(
        id="amara-divi-001",
        name="Amara Divi Expert",
        description="Soporte avanzado para Divi y WordPress",
        avatar=_avatar("photo-1618477388954-7852f32655ec"),
        role="WordPress Expert",
        voice=Voice.NOVA,
        category=Category.SPECIALIZED,
        creator="Elegant Themes",
        chat_count=10000,
        stats=_stats(10000, 4.7, 6000, 2500, 1000, 300, 200),
    ),
    Assistant(
        id="salomon-lawyer-001",
        name="Salomón Tico-Lawyer",
        description="Asesor legal especializado en leyes costarricenses",
        avatar=_avatar("photo-1505664194779-8beaceb93744"),
        role="Legal Advisor",
        voice=Voice.ONYX,
        category=Category.SPECIALIZED,
        creator="Legal Nexus",
        chat_count=8000,
        stats=_stats(8000, 4.8, 5000, 2000, 700, 200, 100),
    ),
    Assistant(
        id="joe-biodiversity-001",
        name="Joe, The Biodiversity Partner",
        description="Guía naturalista para la biodiversidad de Costa Rica",
        avatar=_avatar("photo-1542662565-7e4b66bae529"),
        role="Nature Guide",
        voice=Voice.ALLOY,
        category=Category.TRENDING,
        creator="EcoTica",
        chat_count=12000,
        stats=_stats(12000, 4.9, 8000, 2500, 1000, 300, 200),
    ),
    Assistant(
        id="kaleb-synthflow-001",
        name="Kaleb Synthflow Expert",
        description="Asesor en la creación de asistentes de voz con Synthflow",
        avatar=_avatar("photo-1583864697784-a0efc8379f70"),
        role="Voice AI Expert",
        voice=Voice.ECHO,
        category=Category.SPECIALIZED,
        creator="Synthflow Labs",
        chat_count=5000,
        stats=_stats(5000, 4.7, 3000, 1200, 500, 200, 100),
    ),
    Assistant(
        id="theo-huggingface-001",
        name="Theo Hugging Face Expert",
        description="Especialista en el uso de modelos de Hugging Face",
        avatar=_avatar("photo-1618477247222-acbdb0e159b3"),
        role="ML Expert",
        voice=Voice.FABLE,
        category=Category.TRENDING,
        creator="Hugging Face",
        chat_count=18000,
        stats=_stats(18000, 4.8, 11000, 4500, 1500, 600, 400),
    ),
    Assistant(
        id="elliot-glif-001",
        name="Elliot Glif APP Expert",
        description="Experto en Glif para el desarrollo de aplicaciones",
        avatar=_avatar("photo-1573496359142-b8d87734a5a2"),
        role="App Developer",
        voice=Voice.SHIMMER,
        category=Category.SPECIALIZED,
        creator="Glif Team",
        chat_count=7000,
        stats=_stats(7000, 4.6, 4000, 1800, 800, 300, 100),
    ),
    Assistant(
        id="bolt-new-001",
        name="Bolt New Expert",
        description="Soporte avanzado para la creación en Bolt.new",
        avatar=_avatar("photo-1635107510862-53886e926b74"),
        role="Development Expert",
        voice=Voice.NOVA,
        category=Category.FEATURED,
        creator="Bolt Team",
        chat_count=20000,
        stats=_stats(20000, 4.9, 13000, 4500, 1500, 600, 400),
    ),
    Assistant(
        id="professor-sloth-001",
        name="Professor Sloth",
        description="Embajador turístico que educa y conecta con Costa Rica",
        avatar=_avatar("photo-1517849845537-4d257902454a"),
        role="Tourism Guide",
        voice=Voice.ALLOY,
        category=Category.FEATURED,
        creator="Tourism CR",
        chat_count=22000,
        stats=_stats(22000, 4.9, 14000, 5000, 2000, 700, 300),
    ),
)

# Used when the catalog is seeded empty.
FALLBACK_ASSISTANT = Assistant(
    id="default",
    name="Assistant",
    description="A helpful AI assistant",
    avatar=_avatar("photo-1620712943543-bcc4688e7485"),
    role="Assistant",
    voice=Voice.ALLOY,
    stats=_stats(0, 5.0, 1, 0, 0, 0, 0),
)


class AssistantCatalog:
    def __init__(self, assistants: Optional[Iterable[Assistant]] = None) -> None:
        seed = BUILTIN_ASSISTANTS if assistants is None else tuple(assistants)
        self._order: list[str] = []
        self._by_id: dict[str, Assistant] = {}
        for assistant in seed:
            if assistant.id in self._by_id:
                raise ValueError(f"Duplicate assistant id in catalog: {assistant.id}")
            self._order.append(assistant.id)
            self._by_id[assistant.id] = assistant
        self.version: int = 0

    def __contains__(self, assistant_id: str) -> bool:
        return assistant_id in self._by_id

    def __len__(self) -> int:
        return len(self._order)

    def list_all(self) -> list[Assistant]:
        """All assistants in seed order."""
        return [self._by_id[i] for i in self._order]

    def get(self, assistant_id: str) -> Optional[Assistant]:
        return self._by_id.get(assistant_id)

    def default_assistant(self) -> Assistant:
        """The flagged default, else the first seeded, else the fallback persona."""
        assistants = self.list_all()
        if not assistants:
            return FALLBACK_ASSISTANT
        return next((a for a in assistants if a.is_default), assistants[0])

    def _require(self, assistant_id: str) -> Assistant:
        assistant = self._by_id.get(assistant_id)
        if assistant is None:
            raise AssistantNotFoundError(assistant_id)
        return assistant

    def _put(self, assistant: Assistant) -> Assistant:
        self._by_id[assistant.id] = assistant
        self.version += 1
        return assistant

    def record_rating(self, assistant_id: str, rating: int) -> Assistant:
        """
        Fold a 1-5 rating into the assistant's distribution.
        Raises AssistantNotFoundError for unknown ids and
        RatingOutOfRangeError for ratings outside 1..5.
        """
        assistant = self._require(assistant_id)
        stats = fold_rating(assistant.stats, rating)
        logger.debug(
            "Rating %s recorded for %s (users=%s, mean=%s)",
            rating,
            assistant_id,
            stats.users,
            stats.rating,
        )
        return self._put(replace(assistant, stats=stats))

    def set_voice(self, assistant_id: str, voice: Voice) -> Assistant:
        assistant = self._require(assistant_id)
        return self._put(replace(assistant, voice=Voice(voice)))
